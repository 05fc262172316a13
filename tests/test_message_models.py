import json

import pytest

from dice_bridge.models.dc_models import DiceStyle, DiceType
from dice_bridge.models.message_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    RollComplete,
    RollTrigger,
    encode_message,
    parse_message,
)


def test_parse_roll_trigger_with_nested_descriptor():
    message = parse_message(
        json.dumps(
            {
                "type": "TRIGGER_ROLL",
                "rollId": "r-1",
                "dice": [{"descriptor": {"style": "MYZBASE"}, "count": 3}],
                "hidden": True,
            }
        )
    )
    assert isinstance(message, RollTrigger)
    assert message.roll_id == "r-1"
    assert message.dice[0].descriptor.style == DiceStyle.MYZBASE
    assert message.dice[0].descriptor.type is None
    assert message.dice[0].count == 3
    assert message.hidden is True


def test_parse_roll_trigger_with_flat_descriptor():
    message = parse_message(
        {
            "type": "TRIGGER_ROLL",
            "rollId": "r-2",
            "dice": [{"style": "GALAXY", "type": "D20"}, {"style": "MYZGEAR", "count": 2}],
        }
    )
    assert isinstance(message, RollTrigger)
    assert message.dice[0].descriptor.type == DiceType.D20
    assert message.dice[0].count is None
    assert message.dice[1].descriptor.style == DiceStyle.MYZGEAR
    assert message.dice[1].count == 2


def test_unknown_fields_are_ignored():
    message = parse_message(
        {"type": "AVAILABILITY_REQUEST", "requestId": "q-1", "sentBy": "another-plugin"}
    )
    assert message == AvailabilityRequest(request_id="q-1")


def test_parse_availability_response_and_roll_complete():
    response = parse_message(
        '{"type": "AVAILABILITY_RESPONSE", "requestId": "q-1", "available": true, "version": "1.0.0"}'
    )
    assert isinstance(response, AvailabilityResponse)
    assert response.version == "1.0.0"

    complete = parse_message(
        {
            "type": "ROLL_COMPLETE",
            "rollId": "r-1",
            "playerId": "p-1",
            "individualResults": {"a": 3, "b": 5},
            "finalValue": 8,
        }
    )
    assert isinstance(complete, RollComplete)
    assert complete.final_value == 8
    assert complete.dice_roll is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "42",
        '["TRIGGER_ROLL"]',
        {"type": "SOMETHING_ELSE", "rollId": "r-1"},
        {"type": "TRIGGER_ROLL", "dice": []},
        {"type": "TRIGGER_ROLL", "rollId": "r-1", "dice": [{"style": "NOT_A_STYLE"}]},
        {"requestId": "q-1"},
        b"\xff\xfe",
        "[" * 100000 + "]" * 100000,
    ],
)
def test_malformed_payloads_are_dropped(raw):
    assert parse_message(raw) is None


def test_encode_uses_camel_case_and_omits_unset_fields():
    payload = json.loads(encode_message(AvailabilityRequest(request_id="q-9")))
    assert payload == {"type": "AVAILABILITY_REQUEST", "requestId": "q-9"}

    trigger = RollTrigger(roll_id="r-3", dice=[{"style": "MYZSKILL", "count": 2}])
    payload = json.loads(encode_message(trigger))
    assert payload["rollId"] == "r-3"
    assert payload["dice"] == [{"descriptor": {"style": "MYZSKILL"}, "count": 2}]
    assert "hidden" not in payload
    assert parse_message(encode_message(trigger)) == trigger
