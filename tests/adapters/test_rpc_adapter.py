from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from equery import FetchClient, FetcherDefinition, create_rpc_adapter


def run_async(coro):
    return asyncio.run(coro)


class UserRoutes:
    def __init__(self) -> None:
        self.calls = []

    async def by_id(self, payload):
        self.calls.append(payload)
        await asyncio.sleep(0.01)
        return {"id": payload["id"], "name": f"user-{payload['id']}"}

    def list(self, limit=10, *, offset=0):
        self.calls.append((limit, offset))
        return list(range(offset, offset + limit))


def test_keys_follow_the_procedure_path_and_input():
    rpc = create_rpc_adapter(SimpleNamespace(user=UserRoutes()))

    assert rpc.user.by_id({"id": 1}).key == 'user.by_id.{"id":1}'
    assert rpc.user.by_id({"id": 2}).key == 'user.by_id.{"id":2}'
    assert rpc.user.list().key == "user.list"
    assert rpc.user.list(limit=5).key == 'user.list.{"limit":5}'
    assert rpc.user.list(5, offset=2).key == 'user.list.{"args":[5],"kwargs":{"offset":2}}'


def test_calling_a_procedure_does_not_invoke_it():
    routes = UserRoutes()
    rpc = create_rpc_adapter({"user": routes})
    definition = rpc.user.by_id({"id": 3})
    assert isinstance(definition, FetcherDefinition)
    assert routes.calls == []


def test_mapping_callers_support_item_access():
    rpc = create_rpc_adapter({"health": {"ping": lambda: "pong"}})
    assert rpc["health"]["ping"]().key == "health.ping"
    with pytest.raises(AttributeError):
        rpc.missing
    with pytest.raises(KeyError):
        rpc["missing"]


def test_non_callable_leaves_are_returned_as_is():
    rpc = create_rpc_adapter(SimpleNamespace(version="1.2", limits={"max": 3}))
    assert rpc.version == "1.2"
    assert rpc.limits.max == 3


def test_equal_inputs_share_one_call_through_client():
    async def scenario() -> None:
        routes = UserRoutes()
        rpc = create_rpc_adapter(SimpleNamespace(user=routes))
        client = FetchClient()

        first = client.use_fetch(rpc.user.by_id({"id": 1}))
        second = client.use_fetch(rpc.user.by_id({"id": 1}))
        other = client.use_fetch(rpc.user.by_id({"id": 2}))

        assert first.get_id() == second.get_id()
        assert other.get_id() != first.get_id()

        results = await asyncio.gather(first, second, other)
        assert routes.calls == [{"id": 1}, {"id": 2}]
        assert [result.data["name"] for result in results] == ["user-1", "user-1", "user-2"]

    run_async(scenario())


def test_sync_procedures_run_through_client():
    async def scenario() -> None:
        routes = UserRoutes()
        rpc = create_rpc_adapter(SimpleNamespace(user=routes))
        result = await FetchClient().use_fetch(rpc.user.list(3))
        assert result.data == [0, 1, 2]

    run_async(scenario())


def test_procedure_errors_surface_in_result():
    async def scenario() -> None:
        def fail():
            raise PermissionError("forbidden")

        rpc = create_rpc_adapter({"admin": {"purge": fail}})
        result = await FetchClient().use_fetch(rpc.admin.purge())
        assert result.is_error
        assert isinstance(result.error, PermissionError)
        assert str(result.error) == "forbidden"

    run_async(scenario())


def test_inputs_differing_only_in_key_type_are_not_shared():
    async def scenario() -> None:
        calls = []

        async def lookup(payload):
            calls.append(payload)
            await asyncio.sleep(0.01)
            return payload

        rpc = create_rpc_adapter({"lookup": lookup})
        client = FetchClient()

        int_keyed = client.use_fetch(rpc.lookup({1: "x"}))
        str_keyed = client.use_fetch(rpc.lookup({"1": "x"}))
        assert int_keyed.get_id() != str_keyed.get_id()

        int_result, str_result = await asyncio.gather(int_keyed, str_keyed)
        assert calls == [{1: "x"}, {"1": "x"}]
        assert int_result.data == {1: "x"}
        assert str_result.data == {"1": "x"}

    run_async(scenario())
