import jwt
import pytest

from pocketguard import auth, database
from pocketguard.errors import AuthenticationError, ValidationError


def _issuer(**kwargs):
    return auth.TokenIssuer(secret="test-secret", **kwargs)


def test_password_hash_and_verify():
    hashed = auth.hash_password("s3cr3t-pass")
    assert hashed != "s3cr3t-pass"
    assert auth.verify_password("s3cr3t-pass", hashed)
    assert not auth.verify_password("wrong", hashed)
    assert not auth.verify_password("s3cr3t-pass", "not-a-bcrypt-hash")


def test_overlong_password_is_rejected():
    with pytest.raises(ValidationError):
        auth.hash_password("x" * 73)


def test_extract_bearer_token():
    assert auth.extract_bearer_token("Bearer token-value") == "token-value"
    assert auth.extract_bearer_token("Basic dXNlcjpwYXNz") is None
    assert auth.extract_bearer_token("Bearer ") is None
    assert auth.extract_bearer_token(None) is None


def test_issue_and_decode():
    issuer = _issuer()
    token = issuer.issue(3, "ana@example.com")
    claims = issuer.decode(token)
    assert claims["userId"] == 3
    assert claims["email"] == "ana@example.com"
    assert issuer.authenticate(f"Bearer {token}")["userId"] == 3


def test_authenticate_without_header():
    with pytest.raises(AuthenticationError, match="No token provided"):
        _issuer().authenticate(None)


def test_expired_token_can_be_refreshed():
    expired = _issuer(ttl_days=-1).issue(3, "ana@example.com")
    issuer = _issuer()
    with pytest.raises(AuthenticationError, match="expired"):
        issuer.decode(expired)

    fresh = issuer.refresh(expired)
    assert issuer.decode(fresh)["userId"] == 3


def test_forged_token_is_rejected():
    forged = auth.TokenIssuer(secret="other-secret").issue(3, "ana@example.com")
    with pytest.raises(AuthenticationError):
        _issuer().decode(forged)
    with pytest.raises(AuthenticationError):
        _issuer().refresh(forged)


def test_token_without_identity_is_rejected():
    token = jwt.encode({"email": "ana@example.com"}, "test-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        _issuer().decode(token)


def test_register_and_login(tmp_path):
    db_path = str(tmp_path / "pg.db")
    issuer = _issuer()

    session = auth.register(db_path, issuer, "Ana", "ana@example.com", "pw123456")
    assert session["user"] == {"id": 1, "name": "Ana", "email": "ana@example.com"}
    assert issuer.decode(session["token"])["userId"] == 1

    with pytest.raises(ValidationError):
        auth.register(db_path, issuer, "Ana", "ana@example.com", "pw123456")
    with pytest.raises(ValidationError):
        auth.register(db_path, issuer, "", "ben@example.com", "pw")

    assert auth.login(db_path, issuer, "ana@example.com", "pw123456")["user"]["id"] == 1
    with pytest.raises(AuthenticationError):
        auth.login(db_path, issuer, "ana@example.com", "nope")
    with pytest.raises(AuthenticationError):
        auth.login(db_path, issuer, "ghost@example.com", "pw123456")
    with pytest.raises(ValidationError):
        auth.login(db_path, issuer, "ana@example.com", "")


def test_google_sign_in_creates_then_reuses_user(tmp_path):
    db_path = str(tmp_path / "pg.db")
    calls = []

    def fake_verifier(credential, client_id):
        calls.append((credential, client_id))
        return {"email": "gina@example.com", "name": "Gina"}

    first = auth.google_sign_in(db_path, _issuer(), "cred", "client-123", verifier=fake_verifier)
    second = auth.google_sign_in(db_path, _issuer(), "cred", "client-123", verifier=fake_verifier)

    assert first["user"] == second["user"] == {"id": 1, "name": "Gina", "email": "gina@example.com"}
    assert calls == [("cred", "client-123"), ("cred", "client-123")]
    assert database.get_user_by_email(db_path, "gina@example.com") is not None


def test_google_sign_in_errors(tmp_path):
    db_path = str(tmp_path / "pg.db")

    with pytest.raises(ValidationError):
        auth.google_sign_in(db_path, _issuer(), "", "client-123")
    with pytest.raises(AuthenticationError):
        auth.google_sign_in(db_path, _issuer(), "cred", None)
    with pytest.raises(AuthenticationError):
        auth.google_sign_in(db_path, _issuer(), "cred", "client-123", verifier=lambda c, i: {})


def test_google_name_defaults_to_email_prefix(tmp_path):
    db_path = str(tmp_path / "pg.db")
    session = auth.google_sign_in(
        db_path, _issuer(), "cred", "client-123", verifier=lambda c, i: {"email": "sam@example.com"}
    )
    assert session["user"]["name"] == "sam"
