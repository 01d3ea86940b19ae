import pytest

from marketmate.core.ids import gen_id, id_factory
from marketmate.core.security import generate_api_key, hash_api_key, key_prefix


def test_generated_key_round_trips_prefix_and_hash():
    key = generate_api_key()
    assert key.plain.startswith(f"mm_{key.prefix}_")
    assert key_prefix(key.plain) == key.prefix
    assert hash_api_key(key.plain) == key.hashed
    assert key.plain not in key.hashed


def test_two_keys_never_share_a_hash():
    a, b = generate_api_key(), generate_api_key()
    assert a.plain != b.plain
    assert a.hashed != b.hashed


@pytest.mark.parametrize("plain", ["", "mm_", "mm_short_x", "hk_abcdef12_secret", "mm_abcdef12_", "garbage"])
def test_malformed_keys_have_no_prefix(plain):
    assert key_prefix(plain) is None


def test_ids_carry_known_prefixes():
    assert gen_id("lst").startswith("lst_")
    assert id_factory("ofr")() != id_factory("ofr")()
    with pytest.raises(ValueError):
        gen_id("zzz")
