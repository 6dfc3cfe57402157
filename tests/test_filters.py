from app.records.filters import (
    apply_filters,
    filter_by_department,
    filter_by_name,
    parse_department_list,
)

RECORDS = [
    {"Interessado": "Maria da Silva", "Requerente": "", "Setor Origem": "PROTOCOLO"},
    {"Interessado": "Empresa X", "Requerente": "João Souza", "Setor Origem": "Arquivo Geral"},
    {"Interessado": "Empresa Y", "Requerente": "Ana", "Setor Origem": "Protocolo"},
]


def test_parse_department_list() -> None:
    assert parse_department_list(" Protocolo, ARQUIVO geral ,,") == ["protocolo", "arquivo geral"]
    assert parse_department_list(None) == []
    assert parse_department_list("") == []


def test_filter_by_department_is_exact_and_case_insensitive() -> None:
    kept = filter_by_department(RECORDS, ["protocolo"])
    assert [record["Interessado"] for record in kept] == ["Maria da Silva", "Empresa Y"]
    assert filter_by_department(RECORDS, ["proto"]) == []
    assert filter_by_department(RECORDS, []) == RECORDS


def test_filter_by_name_matches_either_party() -> None:
    assert [r["Interessado"] for r in filter_by_name(RECORDS, "silva")] == ["Maria da Silva"]
    assert [r["Interessado"] for r in filter_by_name(RECORDS, "JOÃO")] == ["Empresa X"]
    assert filter_by_name(RECORDS, "  ") == RECORDS


def test_apply_filters_combines_both() -> None:
    assert apply_filters(RECORDS, departments=["protocolo"], name="empresa") == [RECORDS[2]]
    assert apply_filters(RECORDS, departments=["arquivo geral"], name="maria") == []
