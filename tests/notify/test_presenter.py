"""Tests for the notification presenter."""
import asyncio

import pytest
import pytest_asyncio

from chatr.notify import NotificationPreferences, NotificationPresenter, Toast, sound_for
from chatr.realtime import InboundEvent, InboundKind

from conftest import (
    CONVERSATION_ID,
    OTHER_CONVERSATION_ID,
    OTHER_USER_ID,
    FakeFocus,
    RecordingOSNotifier,
    RecordingSound,
    RecordingToasts,
)


def _message_event(conversation_id: str = CONVERSATION_ID) -> InboundEvent:
    return InboundEvent(
        kind=InboundKind.MESSAGE,
        payload={"id": "m1"},
        origin_user_id=OTHER_USER_ID,
        conversation_id=conversation_id,
        title="dana",
        body="hello there",
        category="message",
        data={"conversation_id": conversation_id, "message_id": "m1",
              "route": f"/chat/{conversation_id}"},
    )


def _notification_event(category: str) -> InboundEvent:
    return InboundEvent(kind=InboundKind.NOTIFICATION, payload={"id": "n1"},
                        title="Heads up", body="Something happened", category=category)


@pytest.fixture
def toasts():
    return RecordingToasts()


@pytest.fixture
def sound():
    return RecordingSound()


@pytest.fixture
def os_notifier():
    return RecordingOSNotifier()


@pytest.fixture
def focus():
    return FakeFocus(focused=False)


@pytest_asyncio.fixture
async def presenter(toasts, sound, os_notifier, focus):
    p = NotificationPresenter(toasts, sound, os_notifier, focus)
    yield p
    await p.close()


class TestSoundFor:
    def test_categories(self):
        assert sound_for("incoming_call") == "ringtone"
        assert sound_for("call") == "ringtone"
        assert sound_for("call_cancelled") == "notification"
        assert sound_for("wallet_payment") == "payment"
        assert sound_for("food_order") == "order"
        assert sound_for("message") == "notification"


class TestPresent:
    @pytest.mark.asyncio
    async def test_full_presentation_when_unfocused(self, presenter, toasts, sound, os_notifier):
        result = await presenter.present(_message_event(), current_hour=12)

        assert toasts.titles() == ["dana"]
        assert toasts.shown[0].description == "hello there"
        assert toasts.shown[0].duration == 5.0
        assert sound.played == ["notification"]
        assert os_notifier.shown[0].tag == "m1"
        assert os_notifier.shown[0].data["route"] == f"/chat/{CONVERSATION_ID}"
        assert result.suppressed is False
        assert result.os_notification == os_notifier.shown[0]

    @pytest.mark.asyncio
    async def test_active_conversation_is_suppressed(self, presenter, toasts, sound, os_notifier):
        result = await presenter.present(_message_event(), CONVERSATION_ID, current_hour=12)

        assert result.suppressed is True
        assert toasts.shown == []
        assert sound.played == []
        assert os_notifier.shown == []

    @pytest.mark.asyncio
    async def test_other_conversation_is_shown(self, presenter, toasts):
        await presenter.present(_message_event(), OTHER_CONVERSATION_ID, current_hour=12)
        assert toasts.titles() == ["dana"]

    @pytest.mark.asyncio
    async def test_focused_window_skips_os_notification(self, presenter, toasts, os_notifier, focus):
        focus.focused = True
        result = await presenter.present(_message_event(), current_hour=12)
        assert toasts.titles() == ["dana"]
        assert os_notifier.shown == []
        assert result.os_notification is None

    @pytest.mark.asyncio
    async def test_denied_permission_skips_os_notification(self, presenter, os_notifier):
        os_notifier.state = "denied"
        await presenter.present(_message_event(), current_hour=12)
        assert os_notifier.shown == []

    @pytest.mark.asyncio
    async def test_category_sound(self, presenter, sound):
        result = await presenter.present(_notification_event("incoming_call"), current_hour=12)
        assert sound.played == ["ringtone"]
        assert result.sound == "ringtone"

    @pytest.mark.asyncio
    async def test_missing_sound_falls_back(self, toasts, os_notifier, focus):
        sound = RecordingSound(missing=("payment",))
        presenter = NotificationPresenter(toasts, sound, os_notifier, focus)
        result = await presenter.present(_notification_event("payment_received"), current_hour=12)
        await presenter.close()
        assert sound.played == ["notification"]
        assert result.sound == "notification"

    @pytest.mark.asyncio
    async def test_sound_failure_does_not_block_toast(self, toasts, os_notifier, focus):
        sound = RecordingSound(missing=("notification",))
        presenter = NotificationPresenter(toasts, sound, os_notifier, focus)
        result = await presenter.present(_message_event(), current_hour=12)
        await presenter.close()
        assert result.sound is None
        assert toasts.titles() == ["dana"]

    @pytest.mark.asyncio
    async def test_quiet_hours_suppress_messages(self, presenter, toasts):
        presenter.preferences = NotificationPreferences(quiet_hours=(22, 6))
        result = await presenter.present(_message_event(), current_hour=23)
        assert result.suppressed is True
        assert toasts.shown == []

    @pytest.mark.asyncio
    async def test_sound_and_desktop_can_be_disabled(self, presenter, sound, os_notifier):
        presenter.preferences = NotificationPreferences(sound_enabled=False, desktop_enabled=False)
        await presenter.present(_message_event(), current_hour=12)
        assert sound.played == []
        assert os_notifier.shown == []

    @pytest.mark.asyncio
    async def test_toast_failure_is_swallowed(self, presenter, toasts):
        toasts.fail = True
        result = await presenter.present(_message_event(), current_hour=12)
        assert result.toast is not None


class TestAutoDismiss:
    @pytest.mark.asyncio
    async def test_toast_and_os_notification_are_dismissed(self, toasts, sound, os_notifier, focus):
        presenter = NotificationPresenter(toasts, sound, os_notifier, focus, auto_dismiss=0.01)
        result = await presenter.present(_message_event(), current_hour=12)
        await asyncio.sleep(0.05)

        assert toasts.dismissed == [result.toast.id]
        assert os_notifier.closed == [result.os_notification]
        await presenter.close()

    @pytest.mark.asyncio
    async def test_persistent_toast_stays(self, presenter, toasts):
        await presenter.toast(Toast(title="Message failed to send", duration=None))
        await asyncio.sleep(0.01)
        assert toasts.dismissed == []

    @pytest.mark.asyncio
    async def test_close_cancels_pending_dismissals(self, presenter, toasts):
        await presenter.present(_message_event(), current_hour=12)
        await presenter.close()
        assert toasts.dismissed == []


class TestPermissionAndClick:
    @pytest.mark.asyncio
    async def test_permission_is_requested_once(self, toasts, sound, focus):
        os_notifier = RecordingOSNotifier(state="default", answer="default")
        presenter = NotificationPresenter(toasts, sound, os_notifier, focus)

        assert await presenter.ensure_permission() == "default"
        await presenter.ensure_permission()

        assert os_notifier.requests == 1

    @pytest.mark.asyncio
    async def test_decided_permission_is_not_requested(self, presenter, os_notifier):
        assert await presenter.ensure_permission() == "granted"
        assert os_notifier.requests == 0

    @pytest.mark.asyncio
    async def test_click_focuses_and_closes(self, presenter, os_notifier, focus):
        result = await presenter.present(_message_event(), current_hour=12)

        data = await presenter.handle_click(result.os_notification)

        assert focus.focus_calls == 1
        assert os_notifier.closed == [result.os_notification]
        assert data["route"] == f"/chat/{CONVERSATION_ID}"
