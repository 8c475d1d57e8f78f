"""Tests for utils/credentials.py — user ID and password generation."""
import re

import pytest

from utils.credentials import (
    PASSWORD_ALPHABET, generate_password, generate_user_id, user_id_matches_type, user_id_prefix
)


class TestGenerateUserId:
    def test_patron_format(self):
        assert re.match(r'^ptrn\d{4}$', generate_user_id('patron'))

    def test_credit_client_format(self):
        assert re.match(r'^crdcl\d{4}$', generate_user_id('creditClient'))

    def test_unknown_type_gets_credit_client_prefix(self):
        assert generate_user_id('somethingElse').startswith('crdcl')
        assert generate_user_id(None).startswith('crdcl')

    def test_suffix_range(self):
        for _ in range(200):
            suffix = int(generate_user_id('patron')[4:])
            assert 1000 <= suffix <= 9999

    def test_skips_existing_ids(self, monkeypatch):
        draws = iter([234, 234, 3242])
        monkeypatch.setattr('utils.credentials.secrets.randbelow', lambda n: next(draws))
        assert generate_user_id('patron', existing={'ptrn1234'}) == 'ptrn4242'

    def test_exhausted_space_raises(self):
        taken = {f"crdcl{n}" for n in range(1000, 10000)}
        with pytest.raises(ValueError):
            generate_user_id('creditClient', existing=taken, attempts=20)


class TestGeneratePassword:
    def test_length(self):
        assert len(generate_password()) == 8

    def test_alphabet(self):
        for _ in range(50):
            assert all(c in PASSWORD_ALPHABET for c in generate_password())

    def test_alphabet_size(self):
        assert len(PASSWORD_ALPHABET) == 62

    def test_varies(self):
        assert len({generate_password() for _ in range(20)}) > 1


class TestUserIdMatchesType:
    def test_prefixes(self):
        assert user_id_prefix('patron') == 'ptrn'
        assert user_id_prefix('creditClient') == 'crdcl'

    def test_matches(self):
        assert user_id_matches_type('ptrn1234', 'patron')
        assert user_id_matches_type('crdcl5678', 'creditClient')

    def test_mismatch(self):
        assert not user_id_matches_type('ptrn1234', 'creditClient')
        assert not user_id_matches_type('ptrn123', 'patron')
        assert not user_id_matches_type('', 'patron')
