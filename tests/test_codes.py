"""Tests for code generation, hashing and comparison."""

from speedyvan_verify.core.codes import constant_time_equal, generate_code, hash_code


class TestGenerateCode:
    """Tests for generate_code."""

    def test_six_digits_in_range(self):
        for _ in range(500):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100000 <= int(code) <= 999999

    def test_codes_vary(self):
        assert len({generate_code() for _ in range(50)}) > 1


class TestHashCode:
    """Tests for hash_code."""

    def test_sha256_hex(self):
        assert (
            hash_code("123456")
            == "8d969eef6ecad3c29a3a629280e686cf0c3f5d5a86aff3ca12020c923adc6c92"
        )

    def test_deterministic(self):
        assert hash_code("654321") == hash_code("654321")
        assert hash_code("654321") != hash_code("654322")


class TestConstantTimeEqual:
    """Tests for constant_time_equal."""

    def test_equal(self):
        assert constant_time_equal(hash_code("111111"), hash_code("111111")) is True

    def test_not_equal(self):
        assert constant_time_equal(hash_code("111111"), hash_code("222222")) is False

    def test_length_mismatch_is_false(self):
        assert constant_time_equal("abc", "abcd") is False

    def test_non_ascii_is_false(self):
        assert constant_time_equal("é", "é") is False

    def test_non_string_is_false(self):
        assert constant_time_equal(None, "abc") is False
