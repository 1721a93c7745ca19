from __future__ import annotations

import pytest

from sqla_joinedby.exceptions import JoinSpecError
from sqla_joinedby.spec import ColumnPair, JoinTopology, parse_join_spec


class TestDirectSpecs:
    def test_single_name_joins_same_property(self) -> None:
        parsed = parse_join_spec("employee_id", "Employee", "Project")

        assert parsed.topology is JoinTopology.DIRECT
        assert parsed.pairs == (ColumnPair("employee_id", "employee_id"),)
        assert parsed.intermediate is None
        assert not parsed.is_two_hop

    def test_explicit_pair(self) -> None:
        parsed = parse_join_spec("id = owner_id", "Employee", "Device")

        assert parsed.pairs == (ColumnPair("id", "owner_id"),)

    def test_whitespace_is_trimmed(self) -> None:
        parsed = parse_join_spec("  region ,year=  year ", "Ledger", "LedgerEntry")

        assert parsed.pairs == (ColumnPair("region", "region"), ColumnPair("year", "year"))

    def test_pairs_keep_declaration_order(self) -> None:
        parsed = parse_join_spec("c, a = x, b", "Owner", "Ref")

        assert [(p.source, p.target) for p in parsed.pairs] == [("c", "c"), ("a", "x"), ("b", "b")]

    def test_owner_and_referenced_qualifiers_are_stripped(self) -> None:
        parsed = parse_join_spec("Employee.id = Project.employee_id", "Employee", "Project")

        assert parsed.topology is JoinTopology.DIRECT
        assert parsed.pairs == (ColumnPair("id", "employee_id"),)

    def test_qualifiers_compare_case_insensitively(self) -> None:
        parsed = parse_join_spec("employee.id = PROJECT.employee_id", "Employee", "Project")

        assert parsed.topology is JoinTopology.DIRECT

    def test_self_reference(self) -> None:
        parsed = parse_join_spec("Employee.department_id", "Employee", "Employee")

        assert parsed.pairs == (ColumnPair("department_id", "department_id"),)


class TestTwoHopSpecs:
    def test_intermediate_is_detected(self) -> None:
        parsed = parse_join_spec(
            "id = EmployeeProject.employee_id, EmployeeProject.project_id = id",
            "Employee",
            "Project",
        )

        assert parsed.topology is JoinTopology.TWO_HOP
        assert parsed.is_two_hop
        assert parsed.intermediate == "EmployeeProject"
        assert parsed.pairs == (
            ColumnPair("id", "employee_id", None, "EmployeeProject"),
            ColumnPair("project_id", "id", "EmployeeProject", None),
        )

    def test_outer_qualifiers_may_name_owner_and_referenced(self) -> None:
        parsed = parse_join_spec(
            "Employee.id = EP.employee_id, EP.project_id = Project.id", "Employee", "Project"
        )

        assert parsed.intermediate == "EP"
        assert parsed.pairs[0].source == "id"
        assert parsed.pairs[1].target == "id"

    def test_third_pair_is_rejected(self) -> None:
        spec = "id = EP.employee_id, EP.project_id = id, name = EP.name"

        with pytest.raises(JoinSpecError, match="exactly two") as exc_info:
            parse_join_spec(spec, "Employee", "Project")

        assert spec in str(exc_info.value)

    def test_single_pair_is_rejected(self) -> None:
        with pytest.raises(JoinSpecError, match="exactly two"):
            parse_join_spec("id = EP.employee_id", "Employee", "Project")

    def test_implicit_pair_is_rejected(self) -> None:
        with pytest.raises(JoinSpecError, match="exactly two"):
            parse_join_spec("EP.employee_id, EP.project_id = id", "Employee", "Project")

    def test_adjoining_qualifiers_must_match(self) -> None:
        with pytest.raises(JoinSpecError, match="same intermediate"):
            parse_join_spec("id = EP.employee_id, XP.project_id = id", "Employee", "Project")

    def test_intermediate_on_outer_side_is_rejected(self) -> None:
        with pytest.raises(JoinSpecError, match="same intermediate"):
            parse_join_spec("EP.id = employee_id, project_id = EP.id", "Employee", "Project")

    def test_wrong_owner_qualifier(self) -> None:
        with pytest.raises(JoinSpecError, match="not the owner"):
            parse_join_spec("Device.id = EP.employee_id, EP.project_id = id", "Employee", "Project")

    def test_wrong_referenced_qualifier(self) -> None:
        with pytest.raises(JoinSpecError, match="not the referenced"):
            parse_join_spec("id = EP.employee_id, EP.project_id = Device.id", "Employee", "Project")


class TestMalformedSpecs:
    @pytest.mark.parametrize("spec", ["", "   "])
    def test_empty(self, spec: str) -> None:
        with pytest.raises(JoinSpecError, match="empty"):
            parse_join_spec(spec, "Employee", "Project")

    @pytest.mark.parametrize("spec", ["id,", "id, , name", ",id"])
    def test_empty_pair(self, spec: str) -> None:
        with pytest.raises(JoinSpecError, match="empty column pair"):
            parse_join_spec(spec, "Employee", "Project")

    @pytest.mark.parametrize("spec", ["id = owner_id = x", "id =", "= owner_id"])
    def test_malformed_pair(self, spec: str) -> None:
        with pytest.raises(JoinSpecError, match="malformed pair"):
            parse_join_spec(spec, "Employee", "Project")

    @pytest.mark.parametrize("spec", ["Employee. = id", ".id", "Employee.a.b"])
    def test_malformed_name(self, spec: str) -> None:
        with pytest.raises(JoinSpecError, match="malformed name"):
            parse_join_spec(spec, "Employee", "Project")

    def test_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_join_spec("", "Employee", "Project")
