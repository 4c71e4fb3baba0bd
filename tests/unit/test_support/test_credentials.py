import base64

import pytest

from aws_adapters.credentials import decrypt, decrypt_credentials, encrypt
from aws_adapters.errors import CredentialsError, ErrorKind

KEY = "0123456789abcdef"  # AES-128


def test_decrypt_recovers_encrypted_value():
    cipher_text = encrypt("AKIDEXAMPLE", KEY)
    assert cipher_text != "AKIDEXAMPLE"
    assert decrypt(cipher_text, KEY) == "AKIDEXAMPLE"


def test_encrypt_uses_a_fresh_iv():
    assert encrypt("value", KEY) != encrypt("value", KEY)


@pytest.mark.parametrize("key", [None, ""])
def test_no_key_passes_value_through(key):
    assert decrypt("plain-secret", key) == "plain-secret"


def test_decrypt_credentials_decrypts_both_values():
    access = encrypt("access", KEY)
    secret = encrypt("secret", KEY)
    assert decrypt_credentials(access, secret, KEY) == ("access", "secret")


def test_invalid_base64_is_a_credentials_error():
    with pytest.raises(CredentialsError) as exc_info:
        decrypt("not base64!!", KEY)
    assert exc_info.value.kind == ErrorKind.CREDENTIALS


def test_short_cipher_text_is_a_credentials_error():
    with pytest.raises(CredentialsError):
        decrypt(base64.b64encode(b"short").decode(), KEY)


def test_bad_key_length_is_a_credentials_error():
    with pytest.raises(CredentialsError):
        encrypt("value", "short-key")
    with pytest.raises(CredentialsError):
        decrypt(encrypt("value", KEY), "short-key")
