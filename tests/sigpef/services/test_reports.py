import csv
import io

import pytest

from sigpef.services.filtering import AppointmentRow
from sigpef.services.reports import (
    CSV_BOM,
    CSV_HEADERS,
    ReportFilters,
    build_report,
    export_csv,
    format_date_br,
    month_range,
    report_filename,
    summarize,
)


def _row(id_, data, periciado, observacao='', perito='DR ANA') -> AppointmentRow:
    return AppointmentRow(
        id=id_,
        data=data,
        perito=perito,
        especialidade='CLINICA GERAL',
        periciado=periciado,
        observacao=observacao,
    )


ROWS = [
    _row(1, '2025-03-31', 'CARLA', 'FALECIMENTO'),
    _row(2, '2025-03-01', 'ANA'),
    _row(3, '2025-03-15', 'BRUNO', 'COMPARECEU', perito='DR JOSE'),
    _row(4, '2025-04-01', 'DIEGO', 'NAO COMPARECEU'),
    _row(5, '2025-02-28', 'ELISA', 'NAO COMPARECEU'),
]


@pytest.mark.parametrize(
    ('year', 'month', 'expected'),
    [
        ('2025', '', ('2025-01-01', '2025-12-31')),
        ('2025', '2', ('2025-02-01', '2025-02-28')),
        ('2024', '02', ('2024-02-01', '2024-02-29')),
        ('2025', '12', ('2025-12-01', '2025-12-31')),
    ],
)
def test_month_range(year: str, month: str, expected: tuple[str, str]) -> None:
    assert month_range(year, month) == expected


def test_build_report_uses_inclusive_bounds_and_sorts_by_date() -> None:
    report = build_report(ROWS, ReportFilters(start_date='2025-03-01', end_date='2025-03-31'))

    assert [row.id for row in report] == [2, 3, 1]


def test_build_report_filters_by_perito_and_search() -> None:
    assert [row.id for row in build_report(ROWS, ReportFilters(perito='DR JOSE'))] == [3]
    assert [row.id for row in build_report(ROWS, ReportFilters(search='clinica'))] == [5, 2, 3, 1, 4]
    assert [row.id for row in build_report(ROWS, ReportFilters(search='jose'))] == [3]


def test_build_report_pending_status() -> None:
    assert [row.id for row in build_report(ROWS, ReportFilters(status='PENDENTE'))] == [2]


def test_summarize_total_equals_sum_of_buckets() -> None:
    summary = summarize(ROWS)

    assert summary.compareceu == 1
    assert summary.ausente == 2
    assert summary.falecimento == 1
    assert summary.pendente == 1
    assert summary.total == 5
    assert summary.compareceu + summary.ausente + summary.falecimento + summary.pendente == summary.total
    assert summary.outros == 0


def test_summarize_counts_stored_variants_and_unknown_outcomes() -> None:
    rows = [
        _row(1, '2025-05-01', 'ANA', 'AUSENTE'),
        _row(2, '2025-05-02', 'BRUNO', 'Compareceu '),
        _row(3, '2025-05-03', 'CARLA', 'REMARCADO'),
    ]

    summary = summarize(rows)

    assert (summary.ausente, summary.compareceu, summary.outros, summary.total) == (1, 1, 1, 3)

    lines = list(csv.reader(io.StringIO(export_csv(rows, summary)[len(CSV_BOM):])))
    assert lines[-2] == ['Outros', '1', '', '', '']
    assert lines[-1][:2] == ['TOTAL GERAL', '3']


def test_export_csv_layout() -> None:
    rows = build_report(ROWS, ReportFilters(start_date='2025-03-01', end_date='2025-03-31'))

    content = export_csv(rows, summarize(rows))

    assert content.startswith(CSV_BOM)
    lines = list(csv.reader(io.StringIO(content[len(CSV_BOM):])))
    assert lines[0] == CSV_HEADERS
    assert lines[1] == ['01/03/2025', 'ANA', 'DR ANA', 'CLINICA GERAL', 'PENDENTE']
    assert lines[2][4] == 'COMPARECEU'
    data_rows = lines[1:1 + len(rows)]
    assert len(data_rows) == 3
    assert lines[4] == ['', '', '', '', '']
    assert [line[0] for line in lines[5:]] == [
        'RESUMO ESTATISTICO',
        'Compareceu',
        'Nao Compareceu (Ausente)',
        'Falecimento',
        'Pendente',
        'TOTAL GERAL',
    ]
    assert [line[1] for line in lines[6:]] == ['1', '0', '1', '1', '3']


def test_format_date_br() -> None:
    assert format_date_br('2025-03-10') == '10/03/2025'
    assert format_date_br('') == '-'
    assert format_date_br('ontem') == 'ontem'


def test_report_filename() -> None:
    assert report_filename('2025-03-01', '2025-03-31') == 'Relatorio_SIGPEF_2025-03-01_a_2025-03-31.csv'
    assert report_filename('', '', 'DR  JOSE SILVA') == 'Relatorio_SIGPEF_Completo_DR_JOSE_SILVA.csv'
