import asyncio

import pytest

from breathewell.models.auth import Principal
from breathewell.services.auth_session import AuthSession
from breathewell.services.identity import IdentityResolver, effective_display_name
from breathewell.utils.errors import RemoteFailure

from fakes import eventually


@pytest.mark.asyncio
async def test_ensure_profile_creates_once(profiles, alice):
    resolver = IdentityResolver(profiles)

    first = await resolver.ensure_profile(alice)
    second = await resolver.ensure_profile(alice)

    assert first.id == second.id
    assert first.auth_uid == alice.uid
    assert first.display_name == "Alice"
    assert first.daily_tablets == 2
    assert first.reminder_hour == 18
    assert await profiles.count_documents({}) == 1


@pytest.mark.asyncio
async def test_concurrent_first_sign_in_creates_one_profile(profiles, alice):
    resolver = IdentityResolver(profiles)

    results = await asyncio.gather(*(resolver.ensure_profile(alice) for _ in range(5)))

    assert len({p.id for p in results}) == 1
    assert await profiles.count_documents({"auth_uid": alice.uid}) == 1


@pytest.mark.asyncio
async def test_per_uid_locks_are_released(profiles, alice, bob):
    resolver = IdentityResolver(profiles)

    await asyncio.gather(
        *(resolver.ensure_profile(alice) for _ in range(3)),
        resolver.ensure_profile(bob),
    )

    assert resolver._locks == {}
    assert resolver._lock_users == {}


class _UnreachableProfiles:
    async def find_one(self, *args, **kwargs):
        raise RuntimeError("connection refused")


@pytest.mark.asyncio
async def test_failed_lookup_still_releases_lock(alice):
    resolver = IdentityResolver(_UnreachableProfiles())

    with pytest.raises(RemoteFailure):
        await resolver.ensure_profile(alice)

    assert resolver._locks == {}


@pytest.mark.asyncio
async def test_legacy_profile_is_linked_by_email(profiles):
    await profiles.insert_one({"display_name": "", "email": "Carol@Example.com", "daily_puffs": 4})
    carol = Principal(uid="uid-carol", display_name="Carol", email="carol@example.com")

    profile = await IdentityResolver(profiles).ensure_profile(carol)

    assert profile.auth_uid == "uid-carol"
    assert profile.daily_puffs == 4              # legacy settings survive
    assert profile.display_name == "Carol"       # blank name backfilled
    assert await profiles.count_documents({}) == 1


@pytest.mark.asyncio
async def test_email_match_never_steals_a_linked_profile(profiles):
    await profiles.insert_one({"auth_uid": "uid-other", "display_name": "Other", "email": "dan@example.com"})
    dan = Principal(uid="uid-dan", display_name="Dan", email="dan@example.com")

    profile = await IdentityResolver(profiles).ensure_profile(dan)

    assert profile.auth_uid == "uid-dan"
    assert await profiles.count_documents({}) == 2
    other = await profiles.find_one({"auth_uid": "uid-other"})
    assert other["display_name"] == "Other"


@pytest.mark.asyncio
async def test_existing_profile_backfills_blank_email(profiles):
    await profiles.insert_one({"auth_uid": "uid-erin", "display_name": "Erin", "email": ""})
    erin = Principal(uid="uid-erin", display_name="Erin P.", email="erin@example.com")

    profile = await IdentityResolver(profiles).ensure_profile(erin)

    assert profile.email == "erin@example.com"
    assert profile.display_name == "Erin"        # non-blank name is kept


@pytest.mark.asyncio
async def test_bind_resolves_on_sign_in(profiles, alice):
    auth = AuthSession()
    seen = []
    IdentityResolver(profiles).bind(auth, on_profile=seen.append)

    auth.sign_in(alice)
    await eventually(lambda: len(seen) == 1)

    assert seen[0].auth_uid == alice.uid


def test_effective_display_name_fallbacks(alice):
    nameless = Principal(uid="u", email="x@example.com")
    assert effective_display_name(None, alice) == "Alice"
    assert effective_display_name(None, nameless) == "x@example.com"
    assert effective_display_name(None, Principal(uid="u")) == "Anonymous"
    assert effective_display_name(None, None) == "Anonymous"
