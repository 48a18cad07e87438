"""Tests for formlogic/records.py: record loading and validation."""

import pytest

from formlogic.records import (
    Cell,
    Column,
    ColumnType,
    Condition,
    ConditionType,
    Effect,
    Form,
    InvalidRecord,
    Layout,
    LayoutType,
    Row,
    Snapshot,
)


class TestColumn:
    def test_load(self) -> None:
        column = Column.from_record(
            {"id": "col-1", "name": "voltage", "type": "number", "schema": {"unit": "V"}}
        )
        assert column == Column(
            id="col-1", name="voltage", type=ColumnType.NUMBER, schema={"unit": "V"}
        )

    def test_unknown_type(self) -> None:
        with pytest.raises(InvalidRecord, match="unknown type 'slider'"):
            Column.from_record({"id": "col-1", "name": "x", "type": "slider"})

    def test_missing_name(self) -> None:
        with pytest.raises(InvalidRecord, match="missing 'name'"):
            Column.from_record({"id": "col-1", "type": "text"})

    def test_missing_id(self) -> None:
        with pytest.raises(InvalidRecord, match="missing 'id'"):
            Column.from_record({"name": "x", "type": "text"})

    def test_dropdown_needs_options(self) -> None:
        with pytest.raises(InvalidRecord, match="dropdown"):
            Column.from_record({"id": "col-1", "name": "x", "type": "dropdown", "schema": {}})

    def test_dropdown_with_options(self) -> None:
        column = Column.from_record(
            {"id": "col-1", "name": "x", "type": "dropdown", "schema": {"options": ["a", "b"]}}
        )
        assert column.schema["options"] == ["a", "b"]

    def test_api_needs_request_url(self) -> None:
        with pytest.raises(InvalidRecord, match="api"):
            Column.from_record({"id": "col-1", "name": "x", "type": "api", "schema": {}})

    def test_api_rejects_unknown_method(self) -> None:
        with pytest.raises(InvalidRecord):
            Column.from_record(
                {
                    "id": "col-1",
                    "name": "x",
                    "type": "api",
                    "schema": {"request": {"url": "https://x.test", "method": "FETCH"}},
                }
            )

    def test_extra_schema_keys_are_kept(self) -> None:
        column = Column.from_record(
            {"id": "col-1", "name": "x", "type": "text", "schema": {"hint": "Serial number"}}
        )
        assert column.schema == {"hint": "Serial number"}

    def test_schema_must_be_object(self) -> None:
        with pytest.raises(InvalidRecord, match="must be an object"):
            Column.from_record({"id": "col-1", "name": "x", "type": "text", "schema": [1]})

    def test_unvalidated_type_accepts_any_schema(self) -> None:
        column = Column.from_record(
            {"id": "col-1", "name": "x", "type": "signature", "schema": {"pen": "blue"}}
        )
        assert column.type is ColumnType.SIGNATURE


class TestLayout:
    def test_wire_names(self) -> None:
        layout = Layout.from_record(
            {
                "id": "l1",
                "type": "input",
                "LayoutId": "form",
                "ColumnId": "col-1",
                "order": 2.5,
                "required": None,
            }
        )
        assert layout.layout_id == "form"
        assert layout.column_id == "col-1"
        assert layout.order == 2.5
        assert layout.required is None

    def test_snake_case_names(self) -> None:
        layout = Layout.from_record(
            {"id": "l1", "type": "group", "layout_id": "form", "column_id": None}
        )
        assert layout.layout_id == "form"
        assert layout.type is LayoutType.GROUP

    def test_defaults(self) -> None:
        layout = Layout.from_record({"id": "form", "type": "tab"})
        assert layout.layout_id is None
        assert layout.required is False
        assert layout.order is None
        assert layout.schema == {}

    def test_input_needs_column(self) -> None:
        with pytest.raises(InvalidRecord, match="need a 'ColumnId'"):
            Layout.from_record({"id": "l1", "type": "input"})

    def test_container_cannot_carry_column(self) -> None:
        with pytest.raises(InvalidRecord, match="cannot carry"):
            Layout.from_record({"id": "l1", "type": "group", "ColumnId": "col-1"})

    def test_order_must_be_numeric(self) -> None:
        with pytest.raises(InvalidRecord, match="'order'"):
            Layout.from_record({"id": "l1", "type": "group", "order": "first"})

    def test_required_must_be_tri_state(self) -> None:
        with pytest.raises(InvalidRecord, match="'required'"):
            Layout.from_record({"id": "l1", "type": "group", "required": "yes"})


class TestCondition:
    def test_load(self) -> None:
        condition = Condition.from_record(
            {
                "id": "c1",
                "type": "equals",
                "valueColumnId": "col-ok",
                "value": "false",
                "effect": "show",
                "effectLayoutId": "reason",
                "parentConditionId": None,
            }
        )
        assert condition.type is ConditionType.EQUALS
        assert condition.effect is Effect.SHOW
        assert condition.declares_effect is True
        assert condition.is_logical is False

    def test_legacy_compare_widget_alias(self) -> None:
        condition = Condition.from_record(
            {"id": "c1", "type": "equals", "compareWidgetId": "col-ok", "value": "x"}
        )
        assert condition.value_column_id == "col-ok"

    def test_literal_values_become_text(self) -> None:
        assert Condition.from_record({"id": "c", "type": "equals", "value": False}).value == "false"
        assert Condition.from_record({"id": "c", "type": "equals", "value": 12}).value == "12"

    def test_logical_without_effect(self) -> None:
        condition = Condition.from_record({"id": "c1", "type": "or"})
        assert condition.is_logical is True
        assert condition.declares_effect is False

    def test_effect_without_target_declares_nothing(self) -> None:
        condition = Condition.from_record({"id": "c1", "type": "and", "effect": "hide"})
        assert condition.declares_effect is False

    def test_unknown_effect(self) -> None:
        with pytest.raises(InvalidRecord, match="unknown type 'blink'"):
            Condition.from_record({"id": "c1", "type": "and", "effect": "blink"})

    @pytest.mark.parametrize("order", ["2", True, [1]])
    def test_order_must_be_numeric(self, order: object) -> None:
        with pytest.raises(InvalidRecord, match="'order'"):
            Condition.from_record({"id": "c1", "type": "and", "order": order})

    def test_order(self) -> None:
        assert Condition.from_record({"id": "c1", "type": "and", "order": 2}).order == 2


class TestRowAndCell:
    def test_global_row(self) -> None:
        assert Row.from_record({"id": "r1"}).form_id is None

    def test_cell(self) -> None:
        cell = Cell.from_record(
            {"id": "c1", "ColumnId": "col-1", "FormId": "form", "RowId": None, "data": "5"}
        )
        assert cell == Cell(id="c1", column_id="col-1", form_id="form", row_id=None, data="5")

    def test_cell_needs_form(self) -> None:
        with pytest.raises(InvalidRecord, match="FormId"):
            Cell.from_record({"id": "c1", "ColumnId": "col-1"})

    def test_cell_needs_column(self) -> None:
        with pytest.raises(InvalidRecord, match="ColumnId"):
            Cell.from_record({"id": "c1", "FormId": "form"})

    @pytest.mark.parametrize(
        ("data", "text"),
        [
            (False, "false"),
            (12, "12"),
            (1.5, "1.5"),
            ({"latitude": 1}, '{"latitude": 1}'),
            (["a", "b"], '["a", "b"]'),
        ],
    )
    def test_structured_data_is_json_encoded(self, data: object, text: str) -> None:
        cell = Cell.from_record({"id": "c1", "ColumnId": "col-1", "FormId": "form", "data": data})
        assert cell.data == text

    def test_text_and_null_data_kept(self) -> None:
        base = {"id": "c1", "ColumnId": "col-1", "FormId": "form"}
        assert Cell.from_record({**base, "data": '"Fan"'}).data == '"Fan"'
        assert Cell.from_record(base).data is None


class TestSnapshot:
    def test_forms_derived_from_root_layouts(self) -> None:
        snapshot = Snapshot.from_records(
            {
                "layouts": [
                    {"id": "f1", "type": "tab", "name": "First"},
                    {"id": "g", "type": "group", "LayoutId": "f1"},
                    {"id": "f2", "type": "tab", "name": "Second"},
                ],
                "forms": [{"id": "f2", "name": "Renamed"}],
            }
        )
        assert snapshot.forms == (Form(id="f2", name="Renamed"), Form(id="f1", name="First"))

    def test_empty(self) -> None:
        snapshot = Snapshot.from_records({})
        assert snapshot.columns == ()
        assert snapshot.forms == ()
