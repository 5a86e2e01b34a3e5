import pytest
from unittest.mock import patch
from linker.models import User, Link, File
from linker.resolver import (
    resolve, is_valid_short_code, ensure_short_codes_available, generate_available_short_code,
    attach_short_codes, ShortCodeConflict, ResourceKind
)
from linker.cache import get_cached_resolution, cache_resolution

@pytest.fixture
def user(db):
    user = User(username="resolver", email="resolver@example.com", hashed_password="x")
    db.add(user)
    db.commit()
    return user

def make_link(db, user, codes):
    link = Link(user_id=user.id, original_url="https://example.com")
    attach_short_codes(link, codes)
    db.add(link)
    db.commit()
    return link

def make_file(db, user, codes):
    file = File(
        user_id=user.id,
        filename=f"{codes[0]}_a.txt",
        original_name="a.txt",
        mime_type="text/plain",
        file_size=1,
        s3_key=f"2024/01/01/{codes[0]}.txt",
        s3_bucket="bucket"
    )
    attach_short_codes(file, codes)
    db.add(file)
    db.commit()
    return file

@pytest.mark.parametrize("code,valid", [
    ("abc", True),
    ("A-b_9", True),
    ("x" * 32, True),
    ("ab", False),
    ("x" * 33, False),
    ("has space", False),
    ("slash/code", False),
    ("", False),
    (None, False),
])
def test_is_valid_short_code(code, valid):
    assert is_valid_short_code(code) is valid

def test_resolve_all_codes_of_a_link(db, user, redis_mock):
    link = make_link(db, user, ["alpha", "beta", "gamma"])

    for code in ("alpha", "beta", "gamma"):
        resolved = resolve(db, code)
        assert resolved.kind is ResourceKind.LINK
        assert resolved.resource_id == link.id

def test_resolve_file(db, user, redis_mock):
    file = make_file(db, user, ["f-doc"])

    resolved = resolve(db, "f-doc")
    assert resolved.kind is ResourceKind.FILE
    assert resolved.record.id == file.id

def test_resolve_unknown_and_malformed(db, redis_mock):
    assert resolve(db, "missing") is None
    assert resolve(db, "no") is None
    assert resolve(db, "../../etc/passwd") is None
    assert resolve(db, "") is None

def test_malformed_code_skips_storage(db, redis_mock):
    with patch("linker.resolver.get_cached_resolution") as mock_cache:
        with patch.object(db, "query") as mock_query:
            assert resolve(db, "bad code") is None

    mock_cache.assert_not_called()
    mock_query.assert_not_called()

def test_resolve_fills_cache(db, user, redis_mock):
    link = make_link(db, user, ["cached"])

    assert get_cached_resolution("cached") is None
    resolve(db, "cached")
    assert get_cached_resolution("cached") == ("link", link.id)

def test_stale_cache_entry_falls_back_to_database(db, user, redis_mock):
    link = make_link(db, user, ["stale"])
    cache_resolution("stale", "link", "deleted-id")

    resolved = resolve(db, "stale")
    assert resolved.resource_id == link.id
    assert get_cached_resolution("stale") == ("link", link.id)

def test_unknown_kind_in_cache_is_ignored(db, user, redis_mock):
    link = make_link(db, user, ["oddkind"])
    cache_resolution("oddkind", "video", link.id)

    assert resolve(db, "oddkind").resource_id == link.id

def test_ensure_short_codes_available_across_namespaces(db, user, redis_mock):
    make_link(db, user, ["link-code"])
    make_file(db, user, ["file-code"])

    ensure_short_codes_available(db, ["free-one", "free-two"])

    with pytest.raises(ShortCodeConflict) as exc_info:
        ensure_short_codes_available(db, ["free-one", "file-code"])
    assert exc_info.value.short_code == "file-code"

    with pytest.raises(ShortCodeConflict):
        ensure_short_codes_available(db, ["link-code"])

    with pytest.raises(ShortCodeConflict) as exc_info:
        ensure_short_codes_available(db, ["dup", "dup"])
    assert exc_info.value.short_code == "dup"

def test_generate_available_short_code(db, user):
    code = generate_available_short_code(db)
    assert is_valid_short_code(code)
    assert len(code) == 7

    file_code = generate_available_short_code(db, prefix="f-")
    assert file_code.startswith("f-")

def test_generate_retries_on_collision(db, user):
    make_link(db, user, ["AAAAAAA"])

    with patch("linker.resolver.generate_short_code", side_effect=["AAAAAAA", "BBBBBBB"]):
        assert generate_available_short_code(db) == "BBBBBBB"

def test_generate_gives_up(db, user):
    make_link(db, user, ["AAAAAAA"])

    with patch("linker.resolver.generate_short_code", return_value="AAAAAAA"):
        with pytest.raises(RuntimeError):
            generate_available_short_code(db)

def test_attach_short_codes_marks_first_primary(db, user):
    link = make_link(db, user, ["main", "extra"])

    flags = {code.short_code: code.is_primary for code in link.short_codes}
    assert flags == {"main": True, "extra": False}
    assert link.primary_short_code == "main"
