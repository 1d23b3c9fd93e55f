# tests/test_resources.py
"""Tests for the app config and the sandbox resource wrappers"""
import pytest

from screenflow.core.engine.app import App
from screenflow.core.engine.domain import InboundMessage
from screenflow.core.engine.errors import ApiError, ScreenflowError
from screenflow.core.engine.im_config import AppConfig
from screenflow.core.engine.interaction_machine import InteractionMachine
from screenflow.infra.sandbox_api import DummySandboxApi

USER_ADDR = "+27123456789"


async def setup_im(config=None, **api_opts):
    api = DummySandboxApi(config=config, **api_opts)
    im = InteractionMachine(api, App("states:start", name="test_app"))
    await im.setup(InboundMessage(from_addr=USER_ADDR))
    return im, api


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.default_lang == "en"
        assert config.delivery_class == "ussd"
        assert config.endpoints == {}

    def test_extra_keys_are_kept(self):
        config = AppConfig.model_validate({"name": "quiz", "questions": 5})
        assert config.model_extra == {"questions": 5}

    @pytest.mark.asyncio
    async def test_im_config_reads_sandbox_config(self):
        im, _ = await setup_im({"name": "quiz", "delivery_class": "sms", "questions": 5})

        assert im.config.name == "quiz"
        assert im.config.delivery_class == "sms"
        assert im.config.questions == 5
        assert im.config.get("missing", "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_im_config_unknown_attribute_raises(self):
        im, _ = await setup_im({"name": "quiz", "questions": 5})

        with pytest.raises(AttributeError, match="delivery_clas"):
            im.config.delivery_clas
        assert not hasattr(im.config, "missing")
        # Unset fields still read as their default
        assert im.config.user_store is None

    @pytest.mark.asyncio
    async def test_stores_default_to_app_config_name(self):
        im, api = await setup_im({"name": "quiz"})
        assert im.user.store_name == "quiz"
        assert im.metrics.store_name == "quiz"

    @pytest.mark.asyncio
    async def test_explicit_stores(self):
        im, _ = await setup_im({"name": "quiz", "user_store": "people", "metric_store": "stats"})
        assert im.user.store_name == "people"
        assert im.metrics.store_name == "stats"

    @pytest.mark.asyncio
    async def test_sandbox_config_raw_and_json(self):
        im, api = await setup_im({"name": "quiz"})
        api.config_store["greeting"] = "hello"
        api.config_store["limits"] = '{"max": 3}'

        assert await im.sandbox_config.get("greeting") == "hello"
        assert await im.sandbox_config.get("limits") == '{"max": 3}'
        assert await im.sandbox_config.get("limits", json_value=True) == {"max": 3}
        assert await im.sandbox_config.get("nothing", json_value=True) is None


class TestContactsAndGroups:
    @pytest.mark.asyncio
    async def test_contact_for_user(self):
        im, api = await setup_im({"name": "quiz", "delivery_class": "sms"})

        contact = await im.contacts.for_user()
        again = await im.contacts.get_or_create(USER_ADDR)

        assert contact["addr"] == USER_ADDR
        assert again["key"] == contact["key"]
        assert api.requests[-1] == ("contacts.get_or_create", {"addr": USER_ADDR, "delivery_class": "sms"})

    @pytest.mark.asyncio
    async def test_group_by_name(self):
        im, api = await setup_im({"name": "quiz"})
        group = api.add_group("winners", query="score:10")

        assert await im.groups.get_by_name("winners") == group

    @pytest.mark.asyncio
    async def test_missing_group_raises(self):
        im, _ = await setup_im({"name": "quiz"})
        with pytest.raises(ApiError, match="Group not found"):
            await im.groups.get_by_name("losers")


class TestOutbound:
    @pytest.mark.asyncio
    async def test_send_to_configured_endpoint(self):
        im, api = await setup_im({"name": "quiz", "endpoints": {"sms": {"delivery_class": "sms"}}})

        await im.outbound.send_to("+27000000000", "You won!", endpoint="sms")

        assert api.sent == [{"endpoint": "sms", "to_addr": "+27000000000", "content": "You won!"}]

    @pytest.mark.asyncio
    async def test_unknown_endpoint_rejected(self):
        im, api = await setup_im({"name": "quiz", "endpoints": {"sms": {}}})

        with pytest.raises(ScreenflowError, match="Unknown outbound endpoint"):
            await im.outbound.send_to("+27000000000", "You won!", endpoint="twitter")
        assert api.sent == []


class TestMetricStore:
    @pytest.mark.asyncio
    async def test_fire_and_inc(self):
        im, api = await setup_im({"name": "quiz"})

        await im.metrics.fire("score", 7)
        await im.metrics.inc("plays")
        await im.metrics.inc("plays")

        assert api.metrics[("quiz", "score")] == [7]
        assert api.metrics[("quiz", "plays")] == [1, 1]
        assert api.requests[-1] == ("metrics.fire", {"store": "quiz", "metric": "plays", "value": 1, "agg": "sum"})


class TestApiRequest:
    @pytest.mark.asyncio
    async def test_failed_request_raises_api_error(self):
        im, api = await setup_im({"name": "quiz"})
        api.fail("kv.get", "Store offline")

        with pytest.raises(ApiError) as exc_info:
            await im.api_request("kv.get", {"key": "x"})

        assert exc_info.value.reply == {"success": False, "reason": "Store offline"}

    @pytest.mark.asyncio
    async def test_unknown_request_raises_api_error(self):
        im, _ = await setup_im({"name": "quiz"})
        with pytest.raises(ApiError, match="Unknown sandbox request"):
            await im.api_request("teleport", {})
