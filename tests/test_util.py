from datetime import datetime, timedelta, timezone

from kickbook.app.util import hash_password, verify_password, to_naive_utc, round_half_up


def test_password_hash_is_bcrypt():
    stored = hash_password("secret123")

    assert stored.startswith("$2")
    assert stored != hash_password("secret123")  # salted
    assert verify_password("secret123", stored)
    assert not verify_password("secret124", stored)


def test_verify_rejects_malformed_hash():
    assert not verify_password("secret123", "")
    assert not verify_password("secret123", "pbkdf2_sha256$1$00$00")


def test_long_passwords_hash():
    long_pw = "p" * 100
    assert verify_password(long_pw, hash_password(long_pw))


def test_to_naive_utc():
    aware = datetime(2030, 6, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2030, 6, 15, 12, 0)


def test_round_half_up():
    assert [round_half_up(x) for x in (2.5, 3.5, 2.4)] == [3, 4, 2]
