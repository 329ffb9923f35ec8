"""Tests for the subscription filter and JSON store."""

import json

import pytest

from conftest import FakeDelivery, FakeStore, make_photo, make_tweet, make_user
from qtweet.flags import parse_flags
from qtweet.models import Author, Post, Subscription
from qtweet.subscriptions import JsonSubscriptionStore, flags_filter, get_targets, is_valid


def _post(**kwargs) -> Post:
    return Post.from_dict(make_tweet(**kwargs))


def _sub(channel_id, *flags, is_direct=False) -> Subscription:
    return Subscription(channel_id=channel_id, flags=parse_flags(list(flags)), is_direct=is_direct)


class TestIsValid:
    def test_plain_post(self):
        assert is_valid(_post())

    def test_missing_author(self):
        raw = make_tweet()
        del raw["user"]
        assert not is_valid(Post.from_dict(raw))

    def test_quote_without_quoted_post(self):
        assert not is_valid(_post(is_quote_status=True))

    def test_quote_without_quoted_author(self):
        quoted = make_tweet(id="7")
        del quoted["user"]
        assert not is_valid(_post(is_quote_status=True, quoted_status=quoted))

    def test_complete_quote(self):
        assert is_valid(_post(is_quote_status=True, quoted_status=make_tweet(id="7")))

    def test_none(self):
        assert not is_valid(None)


class TestFlagsFilter:
    def test_notext_drops_text_posts(self):
        assert not flags_filter({"notext": True}, _post())
        media_post = _post(extended_entities={"media": [make_photo("https://pbs.twimg.com/m.jpg")]})
        assert flags_filter({"notext": True}, media_post)

    def test_retweets_need_flag(self):
        rt = _post(retweeted_status=make_tweet(id="9", user=make_user(id=2, screen_name="bob")))
        assert not flags_filter({}, rt)
        assert flags_filter({"retweet": True}, rt)

    def test_noquote_drops_quotes(self):
        quote = _post(is_quote_status=True, quoted_status=make_tweet(id="7"))
        assert not flags_filter({"noquote": True}, quote)
        assert flags_filter({}, quote)


class TestGetTargets:
    @pytest.mark.asyncio
    async def test_targets_in_subscription_order(self):
        store = FakeStore({"1": [_sub("10"), _sub("20", "ping"), _sub("30", is_direct=True)]})
        targets = await get_targets(_post(), store, FakeDelivery())
        assert [t.destination.chat_id for t in targets] == ["10", "20", "30"]
        assert targets[1].flags["ping"] is True
        assert targets[2].destination.is_direct is True

    @pytest.mark.asyncio
    async def test_unfollowed_author(self):
        assert await get_targets(_post(), FakeStore({"99": [_sub("10")]}), FakeDelivery()) == []

    @pytest.mark.asyncio
    async def test_reply_to_someone_else(self):
        store = FakeStore({"1": [_sub("10")]})
        post = _post(in_reply_to_user_id=5, in_reply_to_user_id_str="5")
        assert await get_targets(post, store, FakeDelivery()) == []

    @pytest.mark.asyncio
    async def test_self_thread_allowed(self):
        store = FakeStore({"1": [_sub("10")]})
        post = _post(in_reply_to_user_id=1, in_reply_to_user_id_str="1")
        assert len(await get_targets(post, store, FakeDelivery())) == 1

    @pytest.mark.asyncio
    async def test_flag_rules_applied_per_subscription(self):
        store = FakeStore({"1": [_sub("10"), _sub("20", "retweet")]})
        rt = _post(retweeted_status=make_tweet(id="9", user=make_user(id=2, screen_name="bob")))
        targets = await get_targets(rt, store, FakeDelivery())
        assert [t.destination.chat_id for t in targets] == ["20"]

    @pytest.mark.asyncio
    async def test_invalid_post(self):
        store = FakeStore({"1": [_sub("10")]})
        assert await get_targets(_post(is_quote_status=True), store, FakeDelivery()) == []


class TestJsonSubscriptionStore:
    def _write(self, tmp_path, data):
        path = tmp_path / "subs.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    @pytest.mark.asyncio
    async def test_load(self, tmp_path):
        path = self._write(tmp_path, [
            {"author_id": "1", "screen_name": "alice", "channel_id": "-100", "flags": ["retweet"]},
            {"author_id": "1", "channel_id": "-200", "flags": "--noquote --ping", "is_direct": True},
            {"author_id": 2, "channel_id": 300},
        ])
        store = JsonSubscriptionStore(path)
        assert await store.get_followed_author_ids() == ["1", "2"]
        subs = await store.get_subscriptions_for("1")
        assert [s.channel_id for s in subs] == ["-100", "-200"]
        assert subs[0].flags["retweet"] is True
        assert subs[1].flags["noquote"] and subs[1].flags["ping"]
        assert subs[1].is_direct is True
        assert (await store.get_subscriptions_for("2"))[0].channel_id == "300"
        assert store.get_activity("1")["screen_name"] == "alice"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        store = JsonSubscriptionStore(tmp_path / "nope.json")
        assert await store.get_followed_author_ids() == []

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "subs.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonSubscriptionStore(path)

    def test_not_a_list(self, tmp_path):
        with pytest.raises(ValueError):
            JsonSubscriptionStore(self._write(tmp_path, {"author_id": "1"}))

    def test_missing_channel(self, tmp_path):
        with pytest.raises(ValueError):
            JsonSubscriptionStore(self._write(tmp_path, [{"author_id": "1"}]))

    @pytest.mark.asyncio
    async def test_record_activity(self, tmp_path):
        store = JsonSubscriptionStore(self._write(tmp_path, [{"author_id": "1", "channel_id": "-100"}]))
        await store.record_activity(Author(id="1", name="Alice", screen_name="alice_new"))
        activity = store.get_activity("1")
        assert activity["screen_name"] == "alice_new"
        assert activity["last_seen"] is not None

    def test_list_subscriptions(self, tmp_path):
        store = JsonSubscriptionStore(self._write(tmp_path, [
            {"author_id": "1", "channel_id": "-100"},
            {"author_id": "2", "channel_id": "-200"},
        ]))
        assert [(a, s.channel_id) for a, s in store.list_subscriptions()] == [("1", "-100"), ("2", "-200")]
