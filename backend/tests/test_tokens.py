import re

from dropshare.services.tokens import TOKEN_BYTES, generate_token

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestGenerateToken:
    def test_token_is_url_safe(self):
        assert URL_SAFE.match(generate_token())

    def test_token_carries_at_least_256_bits(self):
        assert TOKEN_BYTES >= 32
        # base64 without padding: 4 characters per 3 bytes
        assert len(generate_token()) >= 43

    def test_tokens_do_not_repeat(self):
        tokens = {generate_token() for _ in range(2000)}
        assert len(tokens) == 2000
