import pytest

from tests.conftest import GROUP_ID, api_client, bot, notifier, sign
from postback_relay.main import create_app
from postback_relay.utils.telegram_client import TelegramAPIError
from starlette.testclient import TestClient

PATH = "/timewall-postback"


def _params(user_id="telegram_99", revenue="0.50", revenue_text="0.5", **overrides):
    params = {
        "userid": user_id,
        "revenue": revenue,
        "transactionid": "tx1",
        "type": "credit",
        "currencyAmount": "1.25",
        "hash": sign(user_id, revenue_text),
    }
    params.update(overrides)
    return params


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

def test_valid_postback_is_forwarded(api_client, bot):
    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 200
    assert resp.text == "1"
    assert bot.sent == [(GROUP_ID, "CREDIT:99:1.25")]


def test_chargeback_label(api_client, bot):
    resp = api_client.get(PATH, params=_params(type="chargeback", currencyAmount="-3"))
    assert resp.status_code == 200
    assert bot.sent[-1][1] == "CHARGEBACK:99:-3"


@pytest.mark.parametrize("user_id", ["telegram_42", "42", "discord_42"])
def test_prefix_is_stripped_or_assumed(api_client, bot, user_id):
    resp = api_client.get(PATH, params=_params(user_id=user_id))
    assert resp.status_code == 200
    assert bot.sent[-1][1] == "CREDIT:42:1.25"


def test_case_variants_are_accepted(api_client, bot):
    params = _params()
    params["userID"] = params.pop("userid")
    params["transactionId"] = params.pop("transactionid")
    resp = api_client.get(PATH, params=params)
    assert resp.status_code == 200
    assert bot.sent == [(GROUP_ID, "CREDIT:99:1.25")]


def test_replayed_postback_is_forwarded_again(api_client, bot):
    for _ in range(2):
        assert api_client.get(PATH, params=_params()).status_code == 200
    assert len(bot.sent) == 2


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "missing", ["userid", "revenue", "transactionid", "hash", "type", "currencyAmount"]
)
def test_missing_parameter_rejected(api_client, bot, missing):
    params = _params()
    params.pop(missing)
    resp = api_client.get(PATH, params=params)
    assert resp.status_code == 400
    assert resp.text == "Missing or invalid parameters"
    assert bot.sent == []


def test_empty_parameter_counts_as_missing(api_client, bot):
    resp = api_client.get(PATH, params=_params(type=""))
    assert resp.status_code == 400
    assert bot.sent == []


@pytest.mark.parametrize("field", ["revenue", "currencyAmount"])
def test_non_numeric_amount_rejected(api_client, bot, field):
    resp = api_client.get(PATH, params=_params(**{field: "abc"}))
    assert resp.status_code == 400
    assert bot.sent == []


def test_wrong_hash_rejected(api_client, bot):
    resp = api_client.get(PATH, params=_params(hash="0" * 64))
    assert resp.status_code == 403
    assert resp.text == "Invalid hash"
    assert bot.sent == []


def test_hash_over_raw_revenue_text_rejected(api_client, bot):
    # "0.50" is hashed as the number 0.5, not as the raw text
    resp = api_client.get(PATH, params=_params(hash=sign("telegram_99", "0.50")))
    assert resp.status_code == 403


def test_uppercase_hash_rejected(api_client):
    params = _params()
    params["hash"] = params["hash"].upper()
    assert api_client.get(PATH, params=params).status_code == 403


def test_missing_secret_rejects_everything(notifier, bot):
    app = create_app(notifier, None, port=3001)
    with TestClient(app) as client:
        resp = client.get(PATH, params=_params())
        assert resp.status_code == 403
    assert bot.sent == []


# ---------------------------------------------------------------------------
# Dispatch failures
# ---------------------------------------------------------------------------

def test_disconnected_and_reconnect_fails(api_client, notifier, bot):
    api_client.portal.call(notifier.shutdown)
    bot.get_me_error = TelegramAPIError("Unauthorized", error_code=401)

    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 503
    assert resp.text == "Telegram service unavailable"
    assert bot.sent == []
    assert notifier.pending_reconnect is not None


def test_disconnected_then_reconnects(api_client, notifier, bot):
    api_client.portal.call(notifier.shutdown)
    assert not notifier.is_connected

    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 200
    assert notifier.is_connected
    assert bot.sent == [(GROUP_ID, "CREDIT:99:1.25")]


def test_conflict_marks_disconnected(api_client, notifier, bot):
    bot.send_error = TelegramAPIError(
        "Conflict: terminated by other getUpdates request", error_code=409
    )
    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 503
    assert not notifier.is_connected
    assert notifier.pending_reconnect is not None


def test_other_send_failure_is_500(api_client, notifier, bot):
    bot.send_error = TelegramAPIError("Bad Request: chat not found", error_code=400)
    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 500
    assert resp.text == "Internal Server Error"
    assert notifier.is_connected


def test_error_mentioning_4090ms_is_not_a_conflict(api_client, notifier, bot):
    bot.send_error = RuntimeError("timeout after 4090ms")
    resp = api_client.get(PATH, params=_params())
    assert resp.status_code == 500
    assert notifier.is_connected
    assert notifier.pending_reconnect is None
