"""Tests for host literal parsing, filtering and inventory resolution."""

import pytest

from sup.config import Network
from sup.errors import ConfigError, HostParseError, InventoryError
from sup.hosts import HostFilter, HostIdentity, parse_inventory_output, resolve_hosts


def test_parse_host_literal():
    host = HostIdentity.parse("deploy@web1.example.com")

    assert host.username == "deploy"
    assert host.hostname == "web1.example.com"
    assert host.target == "deploy@web1.example.com"
    assert str(host) == "deploy@web1.example.com"


def test_parse_splits_at_first_at():
    host = HostIdentity.parse("user@host@odd")

    assert host.username == "user"
    assert host.hostname == "host@odd"


@pytest.mark.parametrize("literal", ["localhost", "@host", "user@", ""])
def test_parse_invalid_literal(literal):
    with pytest.raises(HostParseError, match="user@host"):
        HostIdentity.parse(literal)


# ---------------------------------------------------------------------------
# HostFilter
# ---------------------------------------------------------------------------

HOSTS = ["app@us1", "app@us2", "app@eu1", "db@us1", "app@us1"]


def test_filter_without_patterns_keeps_everything():
    assert HostFilter().apply(HOSTS) == HOSTS


def test_filter_only():
    """Include pattern keeps matches in order, duplicates included."""
    assert HostFilter(only="us1").apply(HOSTS) == ["app@us1", "db@us1", "app@us1"]


def test_filter_except():
    assert HostFilter(exclude="^app@").apply(HOSTS) == ["db@us1"]


def test_filter_only_and_except():
    assert HostFilter(only="us", exclude="db").apply(HOSTS) == ["app@us1", "app@us2", "app@us1"]


@pytest.mark.parametrize("kwargs, flag", [({"only": "("}, "--only"), ({"exclude": "[a-"}, "--except")])
def test_filter_invalid_pattern(kwargs, flag):
    with pytest.raises(ConfigError, match=flag):
        HostFilter(**kwargs)


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


def test_parse_inventory_output():
    raw = "  app@10.0.0.1 \n\n\tapp@10.0.0.2\n   \n"
    assert parse_inventory_output(raw) == ["app@10.0.0.1", "app@10.0.0.2"]


@pytest.mark.asyncio
async def test_resolve_static_hosts_only(fake_exec):
    hosts = await resolve_hosts(Network(hosts=["a@h1", "a@h2"]), env={})

    assert hosts == ["a@h1", "a@h2"]
    assert fake_exec.calls == []


@pytest.mark.asyncio
async def test_resolve_appends_inventory_hosts(fake_exec):
    """Inventory hosts follow static ones; duplicates are attempted twice."""
    fake_exec.respond("list-hosts", stdout="a@h2\na@h3\n\n")
    network = Network(hosts=["a@h1", "a@h2"], inventory="./list-hosts")
    env = {"SUP_NETWORK": "prod", "PATH": "/usr/bin"}

    hosts = await resolve_hosts(network, env)

    assert hosts == ["a@h1", "a@h2", "a@h2", "a@h3"]
    argv, kwargs = fake_exec.calls[0]
    assert argv == ("sh", "-c", "./list-hosts")
    # Reason: the inventory sees exactly the merged env, nothing inherited.
    assert kwargs["env"] == env


@pytest.mark.asyncio
async def test_resolve_filters_after_inventory(fake_exec):
    fake_exec.respond("inv", stdout="b@eu1\nb@us9\n")
    network = Network(hosts=["a@us1"], inventory="inv")

    hosts = await resolve_hosts(network, {}, HostFilter(only="us"))

    assert hosts == ["a@us1", "b@us9"]


@pytest.mark.asyncio
async def test_inventory_failure(fake_exec):
    fake_exec.respond("inv", stderr="aws: credentials expired\n", returncode=255)

    with pytest.raises(InventoryError, match="credentials expired"):
        await resolve_hosts(Network(inventory="inv"), {})


@pytest.mark.asyncio
async def test_inventory_spawn_failure(fake_exec):
    fake_exec.respond("inv", raises=OSError("no such file"))

    with pytest.raises(InventoryError, match="no such file"):
        await resolve_hosts(Network(inventory="inv"), {})
