from datetime import date, datetime

import pytest

from sigpef.services.normalization import (
    CANONICAL_PERITO_NAME,
    canonical_observacao,
    normalize_date,
    normalize_observacao,
    normalize_perito_name,
    normalize_raw_appointment,
    partition_raw_appointments,
    pick_field,
)


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('2025-03-10', '2025-03-10'),
        ('2025-03-10 08:30:00', '2025-03-10'),
        ('2025-03-10T08:30:00.000Z', '2025-03-10'),
        ('10/03/2025', '2025-03-10'),
        ('2025/03/10', '2025-03-10'),
        (' 10/03/2025 ', '2025-03-10'),
        (date(2025, 3, 10), '2025-03-10'),
        (datetime(2025, 3, 10, 8, 30), '2025-03-10'),
    ],
)
def test_normalize_date_accepts_known_formats(raw, expected: str) -> None:
    result = normalize_date(raw)

    assert result.ok
    assert result.value == expected


@pytest.mark.parametrize('raw', [None, '', '   ', 'amanhã', '31/02/2025', '2025-13-01', '10-03-2025', '10/03/25'])
def test_normalize_date_rejects_unreadable_values(raw) -> None:
    result = normalize_date(raw)

    assert not result.ok
    assert result.value is None
    assert result.error


@pytest.mark.parametrize(
    'raw_name',
    ['Agnaldo Lima', 'STA AGNAL DO LIMA PEREIRA JUNIOR', 'dr agnal do lima', 'STA AGNALDO PEREIRA'],
)
def test_normalize_perito_name_fixes_known_misspellings(raw_name: str) -> None:
    assert normalize_perito_name(raw_name) == CANONICAL_PERITO_NAME


def test_normalize_perito_name_uppercases_other_names() -> None:
    assert normalize_perito_name('  Maria Souza ') == 'MARIA SOUZA'
    assert normalize_perito_name(None) == ''


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('', ''),
        (None, ''),
        ('pendente', ''),
        ('compareceu', 'COMPARECEU'),
        ('Não  compareceu', 'NAO COMPARECEU'),
        ('ausente', 'NAO COMPARECEU'),
        ('falecido', 'FALECIMENTO'),
    ],
)
def test_normalize_observacao_maps_aliases_to_canonical_status(raw, expected: str) -> None:
    result = normalize_observacao(raw)

    assert result.ok
    assert result.value == expected


def test_normalize_observacao_rejects_unknown_status() -> None:
    assert not normalize_observacao('REMARCADO').ok


def test_canonical_observacao_maps_stored_variants() -> None:
    assert canonical_observacao('AUSENTE') == 'NAO COMPARECEU'
    assert canonical_observacao('Compareceu ') == 'COMPARECEU'
    assert canonical_observacao(None) == ''
    assert canonical_observacao(' remarcado ') == 'REMARCADO'


def test_pick_field_reads_any_key_casing() -> None:
    assert pick_field({'PERITO': 'A'}, 'perito') == 'A'
    assert pick_field({'Perito': 'B'}, 'perito') == 'B'
    assert pick_field({'perito': 'C', 'PERITO': 'D'}, 'perito') == 'C'
    assert pick_field({}, 'perito') is None


def test_normalize_raw_appointment_canonicalizes_fields() -> None:
    result = normalize_raw_appointment(
        {
            'DATA': '10/03/2025',
            'Perito': 'agnaldo lima',
            'especialidade': ' ortopedia ',
            'PERICIADO': 'joão da silva',
            'observacao': 'compareceu',
        }
    )

    assert result.ok
    assert result.value.data == '2025-03-10'
    assert result.value.perito == CANONICAL_PERITO_NAME
    assert result.value.especialidade == 'ORTOPEDIA'
    assert result.value.periciado == 'JOÃO DA SILVA'
    assert result.value.observacao == 'COMPARECEU'


def test_normalize_raw_appointment_prefers_data_pericia_key() -> None:
    result = normalize_raw_appointment({'data_pericia': '2025-03-11', 'data': '2025-03-12', 'periciado': 'X'})

    assert result.value.data == '2025-03-11'


def test_partition_raw_appointments_quarantines_bad_rows() -> None:
    rows = [
        {'data': '2025-03-10', 'periciado': 'Ana', 'perito': 'Dr X', 'observacao': 'ausente'},
        {'data': 'sem data', 'periciado': 'Bruno'},
        {'data': '2025-03-10', 'periciado': '   '},
        {'data': '2025-03-10', 'periciado': 'Carla', 'observacao': 'remarcado'},
    ]

    accepted, quarantined = partition_raw_appointments(rows)

    assert [record.periciado for record in accepted] == ['ANA']
    assert accepted[0].observacao == 'NAO COMPARECEU'
    assert [row.index for row in quarantined] == [1, 2, 3]
    assert quarantined[1].reason == 'missing periciado'
    assert quarantined[0].raw == rows[1]
