"""Tests for DispatchPipeline: stage order, short-circuits, remediation, failures."""

import asyncio

import pytest

from conftest import BOT, GROUP, MOD_CHAT, OTHER, OWNER, USER, make_provider
from chatwarden.agent import replies
from chatwarden.agent.normalizer import normalize
from chatwarden.bus.events import MessageBatch
from chatwarden.channels.mock import make_raw_text
from chatwarden.providers.base import GenerationError, QuotaExceededError


def ctx_for(text: str, sender: str = USER, chat: str = GROUP, **kwargs):
    ctx = normalize(make_raw_text(text, sender, chat, **kwargs))
    assert ctx is not None
    return ctx


# ── Stage 1: mute ────────────────────────────────────────────────────


class TestMuteShortCircuit:
    @pytest.mark.asyncio
    async def test_muted_actor_produces_zero_sends(self, make_harness):
        h = make_harness(rng_value=0.0)
        h.loop.mutes.mute(USER, 60, now=h.clock())
        for text in ("!ping", "hey warden", "https://spam.example", "you are stupid"):
            await h.loop.pipeline.run(ctx_for(text))
        await h.loop.pipeline.run(ctx_for("hello", chat=USER))
        assert h.channel.calls == []
        h.provider.generate.assert_not_awaited()
        assert h.profiles.profiles == {}

    @pytest.mark.asyncio
    async def test_expired_mute_is_cleared(self, make_harness):
        h = make_harness()
        h.loop.mutes.mute(USER, 60, now=h.clock())
        h.clock.advance(61)
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert any("Pong" in t for t in h.user_texts())
        assert USER not in h.loop.mutes.snapshot()


# ── Stage 3: overrides ───────────────────────────────────────────────


class TestOverrides:
    @pytest.mark.asyncio
    async def test_owner_mute_then_target_silenced(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("$mute @200 5", sender=OWNER, mentions=[USER]))
        assert h.loop.mutes.is_muted(USER, now=h.clock())
        assert h.loop.mutes.remaining(USER, now=h.clock()) == pytest.approx(300)
        await asyncio.sleep(0.01)
        h.channel.clear()
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert h.channel.calls == []

    @pytest.mark.asyncio
    async def test_override_is_terminal(self, make_harness):
        h = make_harness(rng_value=0.0)
        await h.loop.pipeline.run(ctx_for("$bogus warden", sender=OWNER))
        h.provider.generate.assert_not_awaited()
        # Stops before the progression stage
        assert OWNER not in h.profiles.profiles
        assert len(h.user_texts()) == 1

    @pytest.mark.asyncio
    async def test_unprivileged_sigil_is_plain_text(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("$mute @300", mentions=[OTHER]))
        assert not h.loop.mutes.is_muted(OTHER, now=h.clock())

    @pytest.mark.asyncio
    async def test_default_mute_duration(self, make_harness):
        h = make_harness(guard={"muteDefaultMinutes": 2})
        await h.loop.pipeline.run(ctx_for("$mute", sender=OWNER, mentions=[USER]))
        assert h.loop.mutes.remaining(USER, now=h.clock()) == pytest.approx(120)

    @pytest.mark.asyncio
    async def test_unmute(self, make_harness):
        h = make_harness()
        h.loop.mutes.mute(USER, 600, now=h.clock())
        await h.loop.pipeline.run(ctx_for("$unmute", sender=OWNER, mentions=[USER]))
        assert not h.loop.mutes.is_muted(USER, now=h.clock())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["inf", "nan", "-inf"])
    async def test_give_rejects_non_finite_points(self, make_harness, amount):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for(f"$give @200 {amount}", sender=OWNER, mentions=[USER]))
        assert h.user_texts()[-1].startswith("Overrides:")
        assert USER not in h.profiles.profiles
        assert h.moderator_notices() == []

    @pytest.mark.asyncio
    async def test_give_points(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("$give @200 120", sender=OWNER, mentions=[USER]))
        assert h.profiles.profiles[USER].xp == 120
        assert h.profiles.profiles[USER].level == 2


# ── Stage 4/5: progression and history ───────────────────────────────


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_message_awards_xp(self, make_harness):
        h = make_harness(guard={"xpPerMessage": 7})
        await h.loop.pipeline.run(ctx_for("just chatting"))
        assert h.profiles.profiles[USER].xp == 7

    @pytest.mark.asyncio
    async def test_button_reply_not_counted(self, make_harness):
        h = make_harness()
        raw = {
            "key": {"remoteJid": GROUP, "participant": USER, "id": "B1"},
            "message": {"buttonsResponseMessage": {"selectedButtonId": "ok", "selectedDisplayText": "OK"}},
        }
        await h.loop.pipeline.run(normalize(raw))
        assert USER not in h.profiles.profiles

    @pytest.mark.asyncio
    async def test_level_up_announced_in_group(self, make_harness):
        h = make_harness(guard={"xpPerMessage": 50})
        await h.loop.pipeline.run(ctx_for("hello all"))
        assert any("reached level 2" in t for t in h.user_texts())

    @pytest.mark.asyncio
    async def test_profile_failure_notifies_moderators_only(self, make_harness):
        h = make_harness()
        h.profiles.fail = True
        await h.loop.pipeline.run(ctx_for("!ping"))
        notices = h.moderator_notices()
        assert any("progression failed" in n for n in notices)
        assert any("ProfileStoreError" in n for n in notices)
        # No apology for a side effect, and the command still ran
        assert not any(t in replies.FAILURE_RESPONSES for t in h.user_texts())
        assert any("Pong" in t for t in h.user_texts())

    @pytest.mark.asyncio
    async def test_transcript_appended(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("first line", push_name="Ann"))
        lines = h.loop.transcripts.recent(GROUP)
        assert [(l.author, l.text) for l in lines] == [("Ann", "first line")]


# ── Stage 6: insult retort ───────────────────────────────────────────


class TestInsult:
    @pytest.mark.asyncio
    async def test_direct_insult_gets_retort(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("you are a stupid bot", chat=USER))
        assert h.user_texts()[0] in replies.RETORTS
        h.provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_group_insult_ignored(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("that movie was stupid"))
        assert not any(t in replies.RETORTS for t in h.user_texts())


# ── Stage 7: policy enforcement ──────────────────────────────────────


class TestBlockedContent:
    @pytest.mark.asyncio
    async def test_link_warns_and_deletes(self, make_harness):
        h = make_harness()
        ctx = ctx_for("join https://chat.whatsapp.com/xyz", message_id="M1")
        await h.loop.pipeline.run(ctx)
        assert h.loop.abuse.warnings(USER) == 1
        assert any("Warning 1/3" in t for t in h.user_texts())
        deletes = h.channel.sent("delete")
        assert deletes[0].payload["message_id"] == "M1"
        assert deletes[0].payload["participant"] == USER

    @pytest.mark.asyncio
    async def test_escalation_removes_and_clears(self, make_harness):
        h = make_harness()
        for i in range(3):
            await h.loop.pipeline.run(ctx_for(f"https://x{i}.example"))
        removals = h.channel.sent("participants")
        assert removals and removals[0].payload == {"participants": [USER], "action": "remove"}
        assert h.loop.abuse.warnings(USER) == 0
        assert any("was removed" in t for t in h.user_texts())

    @pytest.mark.asyncio
    async def test_escalation_without_admin_reports_gap(self, make_harness):
        h = make_harness()
        h.channel.set_members(GROUP, [USER, BOT], admins=[])
        for i in range(3):
            await h.loop.pipeline.run(ctx_for(f"https://x{i}.example"))
        assert h.channel.sent("participants") == []
        assert any("need to be a group admin" in t for t in h.user_texts())
        assert any("not an admin" in n for n in h.moderator_notices())
        assert h.loop.abuse.warnings(USER) == 0

    @pytest.mark.asyncio
    async def test_warning_count_never_decreases_between_violations(self, make_harness):
        h = make_harness(guard={"maxWarnings": 10})
        seen = []
        for i in range(4):
            await h.loop.pipeline.run(ctx_for(f"www.site{i}.example"))
            seen.append(h.loop.abuse.warnings(USER))
        assert seen == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_privileged_actor_bypasses(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("https://ok.example", sender=OWNER))
        assert h.loop.abuse.warnings(OWNER) == 0
        assert h.channel.sent("delete") == []

    @pytest.mark.asyncio
    async def test_policy_toggle_disables(self, make_harness):
        h = make_harness()
        h.loop.policies.set_toggle(GROUP, "antilink", False)
        await h.loop.pipeline.run(ctx_for("https://x.example"))
        assert h.loop.abuse.warnings(USER) == 0

    @pytest.mark.asyncio
    async def test_links_allowed_in_direct_chat(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("https://x.example", chat=USER))
        assert h.loop.abuse.warnings(USER) == 0

    @pytest.mark.asyncio
    async def test_warning_self_destructs(self, make_harness):
        h = make_harness(guard={"warningDeleteAfter": 0.01})
        await h.loop.pipeline.run(ctx_for("https://x.example"))
        await asyncio.sleep(0.05)
        own_deletes = [c for c in h.channel.sent("delete") if c.payload["from_me"]]
        assert len(own_deletes) == 1


class TestBurst:
    @pytest.mark.asyncio
    async def test_flood_removes_sender(self, make_harness):
        h = make_harness(guard={"spamThreshold": 3})
        for i in range(4):
            await h.loop.pipeline.run(ctx_for(f"msg {i}"))
        assert h.channel.sent("participants")[0].payload["participants"] == [USER]
        assert h.loop.abuse.burst_count(USER) == 0
        assert any("flooding" in t for t in h.user_texts())

    @pytest.mark.asyncio
    async def test_spread_out_messages_are_fine(self, make_harness):
        h = make_harness(guard={"spamThreshold": 3, "spamWindow": 3})
        for i in range(6):
            await h.loop.pipeline.run(ctx_for(f"msg {i}"))
            h.clock.advance(2)
        assert h.channel.sent("participants") == []

    @pytest.mark.asyncio
    async def test_flood_without_admin_keeps_window(self, make_harness):
        h = make_harness(guard={"spamThreshold": 2})
        h.channel.set_members(GROUP, [USER, BOT], admins=[])
        for i in range(3):
            await h.loop.pipeline.run(ctx_for(f"msg {i}"))
        assert h.channel.sent("participants") == []
        assert h.loop.abuse.burst_count(USER) == 3


# ── Stage 8: commands ────────────────────────────────────────────────


class TestCommandDispatch:
    @pytest.mark.asyncio
    async def test_open_command(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert any("Pong" in t for t in h.user_texts())

    @pytest.mark.asyncio
    async def test_privileged_command_refused(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!kick @300", mentions=[OTHER]))
        assert replies.PRIVILEGED_ONLY in h.user_texts()
        assert h.channel.sent("participants") == []

    @pytest.mark.asyncio
    async def test_group_only_command_in_direct_chat(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!antilink off", sender=OWNER, chat=OWNER))
        assert replies.GROUP_ONLY in h.user_texts()

    @pytest.mark.asyncio
    async def test_cooldown_reports_wait(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!ping"))
        h.clock.advance(2)
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert h.user_texts()[-1] == replies.COOLDOWN.format(seconds=3)
        h.clock.advance(3.001)
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert "Pong" in h.user_texts()[-1]

    @pytest.mark.asyncio
    async def test_owner_skips_cooldown(self, make_harness):
        h = make_harness()
        for _ in range(3):
            await h.loop.pipeline.run(ctx_for("!ping", sender=OWNER))
        assert sum("Pong" in t for t in h.user_texts()) == 3

    @pytest.mark.asyncio
    async def test_command_never_reaches_ai(self, make_harness):
        h = make_harness(rng_value=0.0)
        await h.loop.pipeline.run(ctx_for("!ping warden"))
        h.provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_command_is_plain_text(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!nosuchthing"))
        assert h.user_texts() == []

    @pytest.mark.asyncio
    async def test_handler_bug_is_contained(self, make_harness):
        h = make_harness()
        spec = h.loop.commands.resolve("ping")

        async def broken(loop, ctx, args):
            raise ZeroDivisionError("oops")

        object.__setattr__(spec, "handler", broken)
        await h.loop.pipeline.run(ctx_for("!ping"))
        assert h.user_texts()[-1] in replies.FAILURE_RESPONSES
        assert any("ZeroDivisionError" in n for n in h.moderator_notices())

    @pytest.mark.asyncio
    async def test_kick_by_owner(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!kick @300", sender=OWNER, mentions=[OTHER]))
        assert h.channel.sent("participants")[0].payload["participants"] == [OTHER]

    @pytest.mark.asyncio
    async def test_kick_without_admin(self, make_harness):
        h = make_harness()
        h.channel.set_members(GROUP, [OWNER, OTHER, BOT], admins=[])
        await h.loop.pipeline.run(ctx_for("!kick @300", sender=OWNER, mentions=[OTHER]))
        assert h.channel.sent("participants") == []
        assert "need to be a group admin" in h.user_texts()[-1]


# ── Stage 9: generative response ─────────────────────────────────────


class TestTriggers:
    @pytest.mark.asyncio
    async def test_direct_chat_always_answers(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("what's up", chat=USER))
        h.provider.generate.assert_awaited_once()
        assert h.user_texts() == ["Hello from the bot!"]

    @pytest.mark.asyncio
    async def test_group_without_trigger_is_silent(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("nice weather today"))
        h.provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"text": "hey you", "mentions": [BOT]},
        {"text": "really?", "quoted_author": BOT, "quoted_text": "earlier answer"},
        {"text": "what does Warden think"},
        {"text": "hey @999 look"},
    ])
    async def test_group_triggers(self, make_harness, kwargs):
        h = make_harness()
        kwargs = dict(kwargs)
        text = kwargs.pop("text")
        await h.loop.pipeline.run(ctx_for(text, **kwargs))
        h.provider.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_name_needs_word_boundary(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("the wardens are here"))
        h.provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_random_draw(self, make_harness):
        h = make_harness(rng_value=0.01, ai={"baseProbability": 0.05})
        await h.loop.pipeline.run(ctx_for("random chatter"))
        h.provider.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_boosts_for_privileged_and_talkative(self, make_harness):
        h = make_harness(rng_value=0.2, ai={"baseProbability": 0.05, "privilegedBoost": 0.25, "talkativeBoost": 0.25})
        await h.loop.pipeline.run(ctx_for("random chatter"))
        h.provider.generate.assert_not_awaited()
        await h.loop.pipeline.run(ctx_for("random chatter", sender=OWNER))
        assert h.provider.generate.await_count == 1
        h.loop.policies.set_talkative(OTHER, True)
        await h.loop.pipeline.run(ctx_for("random chatter", sender=OTHER))
        assert h.provider.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_ai_toggle_off_blocks_triggers(self, make_harness):
        h = make_harness()
        h.loop.policies.set_toggle(GROUP, "ai", False)
        await h.loop.pipeline.run(ctx_for("hey warden"))
        h.provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_always_respond_flag(self, make_harness):
        h = make_harness(ai={"alwaysRespond": True})
        await h.loop.pipeline.run(ctx_for("nothing special"))
        h.provider.generate.assert_awaited_once()


class TestGeneration:
    @pytest.mark.asyncio
    async def test_cached_per_actor_and_prompt(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("tell me a fact", chat=USER))
        await h.loop.pipeline.run(ctx_for("tell me a fact", chat=USER))
        h.provider.generate.assert_awaited_once()
        assert h.user_texts() == ["Hello from the bot!"] * 2
        await h.loop.pipeline.run(ctx_for("tell me a fact", sender=OTHER, chat=OTHER))
        assert h.provider.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_expires(self, make_harness):
        h = make_harness(guard={"cacheTtl": 10})
        await h.loop.pipeline.run(ctx_for("tell me a fact", chat=USER))
        h.clock.advance(11)
        await h.loop.pipeline.run(ctx_for("tell me a fact", chat=USER))
        assert h.provider.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_reply_recorded_in_transcript(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("hi", chat=USER))
        last = h.loop.transcripts.recent(USER)[-1]
        assert last.is_bot and last.text == "Hello from the bot!"

    @pytest.mark.asyncio
    async def test_blocked_generation(self, make_harness):
        h = make_harness(provider=make_provider(text="", blocked_reason="safety"))
        await h.loop.pipeline.run(ctx_for("something edgy", chat=USER))
        assert h.user_texts()[-1] in replies.BLOCKED_RESPONSES
        assert any("blocked" in n for n in h.moderator_notices())
        assert len(h.loop.cache) == 0

    @pytest.mark.asyncio
    async def test_oversized_generation_falls_back(self, make_harness):
        h = make_harness(provider=make_provider(text="x" * 2001))
        await h.loop.pipeline.run(ctx_for("write an essay", chat=USER))
        assert h.user_texts()[-1] in replies.FALLBACK_RESPONSES
        assert len(h.loop.cache) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [GenerationError("timeout"), QuotaExceededError("429")])
    async def test_provider_failure(self, make_harness, error):
        provider = make_provider()
        provider.generate.side_effect = error
        h = make_harness(provider=provider)
        await h.loop.pipeline.run(ctx_for("hi", chat=USER))
        assert h.user_texts()[-1] in replies.FAILURE_RESPONSES
        assert any(type(error).__name__ in n for n in h.moderator_notices())

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, make_harness):
        provider = make_provider()
        provider.generate.side_effect = [GenerationError("boom"), make_provider().generate.return_value]
        h = make_harness(provider=provider)
        batch = MessageBatch("default", [
            make_raw_text("first", USER, USER),
            make_raw_text("second", USER, USER),
        ])
        await h.loop.process_batch(batch)
        texts = h.user_texts()
        assert texts[0] in replies.FAILURE_RESPONSES
        assert texts[1] == "Hello from the bot!"


# ── Stage 10: residual content ───────────────────────────────────────


def view_once_raw(message_id: str = "V1", sender: str = USER) -> dict:
    return {
        "key": {"remoteJid": GROUP, "participant": sender, "id": message_id},
        "message": {"viewOnceMessageV2": {"message": {
            "imageMessage": {"mimetype": "image/png", "caption": "secret", "viewOnce": True},
        }}},
    }


class TestResidual:
    @pytest.mark.asyncio
    async def test_view_once_captured_then_revealed(self, make_harness):
        h = make_harness()
        h.channel.media["V1"] = b"\x89PNG"
        await h.loop.pipeline.run(normalize(view_once_raw()))
        entry = h.loop.vault.peek(USER)
        assert entry is not None and entry.mime_type == "image/png"

        await h.loop.pipeline.run(ctx_for("!reveal @200", sender=OWNER, mentions=[USER]))
        media = h.channel.sent("media")
        assert media[0].payload["data"] == b"\x89PNG"
        assert "secret" in media[0].payload["caption"]
        assert h.loop.vault.peek(USER) is None

    @pytest.mark.asyncio
    async def test_sticker_reaction(self, make_harness):
        h = make_harness(rng_value=0.0)
        raw = {
            "key": {"remoteJid": GROUP, "participant": USER, "id": "S1"},
            "message": {"stickerMessage": {"mimetype": "image/webp"}},
        }
        await h.loop.pipeline.run(normalize(raw))
        reactions = h.channel.sent("reaction")
        assert len(reactions) == 1
        assert reactions[0].payload["emoji"] in h.loop.config.guard.reaction_emojis

    @pytest.mark.asyncio
    async def test_sticker_without_luck(self, make_harness):
        h = make_harness(rng_value=0.99)
        raw = {
            "key": {"remoteJid": GROUP, "participant": USER, "id": "S1"},
            "message": {"stickerMessage": {}},
        }
        await h.loop.pipeline.run(normalize(raw))
        assert h.channel.sent("reaction") == []


# ── Stage 2: presence ────────────────────────────────────────────────


class TestPresence:
    @pytest.mark.asyncio
    async def test_prose_in_group_shows_typing(self, make_harness):
        h = make_harness()
        await h.loop.process_batch(MessageBatch("default", [make_raw_text("a longer sentence", USER, GROUP)]))
        await asyncio.sleep(0.01)
        presence = h.channel.sent("presence")
        assert presence and presence[0].payload["state"] == "composing"
        h.loop.presence.cancel_all()

    @pytest.mark.asyncio
    async def test_commands_do_not_show_typing(self, make_harness):
        h = make_harness()
        await h.loop.pipeline.run(ctx_for("!ping"))
        await asyncio.sleep(0)
        assert h.channel.sent("presence") == []


# ── Cross-batch interleaving ─────────────────────────────────────────


def slow_down(channel, method: str, delay: float = 0.005) -> None:
    """Make a channel primitive yield to the event loop before it runs."""
    original = getattr(channel, method)

    async def slowed(*args, **kwargs):
        await asyncio.sleep(delay)
        return await original(*args, **kwargs)

    setattr(channel, method, slowed)


def single(text: str, sender: str = USER, chat: str = GROUP) -> MessageBatch:
    return MessageBatch("default", [make_raw_text(text, sender, chat)])


class TestConcurrentBatches:
    @pytest.mark.asyncio
    async def test_simultaneous_violations_remove_once(self, make_harness):
        h = make_harness()
        slow_down(h.channel, "send_text")
        for _ in range(h.loop.abuse.max_warnings - 1):
            h.loop.abuse.add_warning(USER)

        await asyncio.gather(
            h.loop.process_batch(single("https://spam.example/a")),
            h.loop.process_batch(single("https://spam.example/b")),
        )

        assert len(h.channel.sent("participants")) == 1
        assert h.loop.abuse.warnings(USER) in (0, 1)
        assert sum("was removed" in t for t in h.user_texts()) == 1
        h.loop.presence.cancel_all()

    @pytest.mark.asyncio
    async def test_simultaneous_commands_inside_cooldown(self, make_harness):
        h = make_harness()
        slow_down(h.channel, "send_text")

        await asyncio.gather(
            h.loop.process_batch(single("!ping", chat=USER)),
            h.loop.process_batch(single("!ping", chat=USER)),
        )

        texts = h.user_texts()
        assert sum(t.startswith("🏓 Pong!") for t in texts) == 1
        assert sum(t.startswith("⏳ Slow down!") for t in texts) == 1

    @pytest.mark.asyncio
    async def test_simultaneous_group_messages_type_once(self, make_harness):
        h = make_harness()
        slow_down(h.channel, "send_presence", delay=0.01)

        await asyncio.gather(
            h.loop.process_batch(single("is anyone around tonight", sender=USER)),
            h.loop.process_batch(single("yes I am here as well", sender=OTHER)),
        )
        await asyncio.sleep(0.05)

        states = [c.payload["state"] for c in h.channel.sent("presence")]
        assert states == ["composing"]
        assert h.loop.presence.is_armed(GROUP)
        h.loop.presence.cancel_all()
