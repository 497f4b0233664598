import pytest

from deal_finder.gtin import canonical_gtin, check_digit, digits_only, is_valid_gtin

VALID = [
    "012345678905",   # UPC-A
    "5901234123457",  # EAN-13
    "10012345678902",  # GTIN-14
    "96385074",       # EAN-8
]


@pytest.mark.parametrize("code", VALID)
def test_valid_codes(code):
    assert is_valid_gtin(code)


@pytest.mark.parametrize("code", VALID)
def test_single_digit_mutation_invalidates(code):
    for i in range(len(code) - 1):
        d = int(code[i])
        mutated = code[:i] + str((d + 1) % 10) + code[i + 1:]
        assert not is_valid_gtin(mutated), mutated


def test_check_digit():
    assert check_digit("01234567890") == 5
    assert check_digit("590123412345") == 7


def test_bad_lengths():
    assert not is_valid_gtin("12345")
    assert not is_valid_gtin("123456789012345")
    assert not is_valid_gtin("")
    assert not is_valid_gtin(None)


def test_separators_ignored():
    assert digits_only("0-12345-67890-5") == "012345678905"
    assert is_valid_gtin("0 12345 67890 5")


def test_canonical_pads_to_14():
    assert canonical_gtin("012345678905") == "00012345678905"
    assert canonical_gtin("0012345678905") == canonical_gtin("012345678905")
    assert canonical_gtin("123") is None
