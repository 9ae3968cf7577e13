import base64

from assistant_bridge.entities import ServiceConfig
from assistant_bridge.services import SecretCodec
from assistant_bridge.services.secret_codec import IV_LENGTH, LEGACY_THRESHOLD

API_KEY = "sk-proj-" + "x" * 48


def test_encrypt_decrypt_round_trip(codec: SecretCodec) -> None:
    blob = codec.encrypt(API_KEY)
    assert blob != API_KEY
    assert codec.decrypt(blob) == API_KEY


def test_encrypt_uses_fresh_iv(codec: SecretCodec) -> None:
    first, second = codec.encrypt(API_KEY), codec.encrypt(API_KEY)
    assert first != second
    assert base64.b64decode(first)[:IV_LENGTH] != base64.b64decode(second)[:IV_LENGTH]


def test_blob_layout_is_iv_followed_by_base64_ciphertext(codec: SecretCodec) -> None:
    data = base64.b64decode(codec.encrypt(API_KEY))
    inner = base64.b64decode(data[IV_LENGTH:], validate=True)
    # AES block aligned, PKCS7 always adds at least one byte
    assert len(inner) % 16 == 0
    assert len(inner) > len(API_KEY)


def test_same_deployment_identity_derives_same_key(codec: SecretCodec) -> None:
    other = SecretCodec("assistant.example.test", "/var/www/html")
    assert other.decrypt(codec.encrypt(API_KEY)) == API_KEY


def test_other_deployment_cannot_decrypt(codec: SecretCodec) -> None:
    other = SecretCodec("elsewhere.example.test", "/srv")
    # A wrong key almost always breaks the padding; if it does not, the bytes are not the key
    assert other.decrypt(codec.encrypt(API_KEY)) != API_KEY


def test_decrypt_garbage_returns_none(codec: SecretCodec) -> None:
    assert codec.decrypt("not base64 at all!!") is None
    assert codec.decrypt(base64.b64encode(b"short").decode()) is None


def test_from_config_uses_server_identity() -> None:
    config = ServiceConfig(server_name="assistant.example.test", document_root="/var/www/html")
    blob = SecretCodec.from_config(config).encrypt(API_KEY)
    assert SecretCodec("assistant.example.test", "/var/www/html").decrypt(blob) == API_KEY


class TestDecodeStored:
    def test_encrypted_value_above_threshold(self, codec: SecretCodec) -> None:
        blob = codec.encrypt(API_KEY)
        assert len(blob) > LEGACY_THRESHOLD
        assert codec.decode_stored(blob) == API_KEY

    def test_legacy_base64_value(self, codec: SecretCodec) -> None:
        stored = base64.b64encode(b"sk-legacy-key").decode()
        assert len(stored) <= LEGACY_THRESHOLD
        assert codec.decode_stored(stored) == "sk-legacy-key"

    def test_empty_value(self, codec: SecretCodec) -> None:
        assert codec.decode_stored("") is None
        assert codec.decode_stored(None) is None

    def test_broken_legacy_value(self, codec: SecretCodec) -> None:
        assert codec.decode_stored("a") is None

    def test_broken_encrypted_value(self, codec: SecretCodec) -> None:
        assert codec.decode_stored("A" * (LEGACY_THRESHOLD + 4)) is None
