"""Unit tests for event publishers."""

import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from teleguard.publishing import (
    TOPIC_ACTION_CREATED,
    TOPIC_THREAT_CREATED,
    InMemoryEventPublisher,
    SNSEventPublisher,
)


class TestInMemoryEventPublisher:

    def test_events_by_topic(self):
        publisher = InMemoryEventPublisher()
        publisher.publish(TOPIC_THREAT_CREATED, {"id": "thr_1"})
        publisher.publish(TOPIC_ACTION_CREATED, {"id": "act_1"})

        assert publisher.events(TOPIC_THREAT_CREATED) == [{"id": "thr_1"}]
        assert len(publisher.events()) == 2

    def test_unknown_topic(self):
        with pytest.raises(ValueError):
            InMemoryEventPublisher().publish("threat.deleted", {})


class TestSNSEventPublisher:

    @pytest.fixture
    def sns(self):
        return MagicMock()

    @pytest.fixture
    def publisher(self, sns):
        return SNSEventPublisher(topic_arn="arn:aws:sns:us-east-1:123456789012:teleguard", sns_client=sns)

    def test_publish_sets_topic_attribute(self, publisher, sns):
        assert publisher.publish(TOPIC_THREAT_CREATED, {"id": "thr_1", "score": 9.1}) is True

        kwargs = sns.publish.call_args.kwargs
        assert kwargs["TopicArn"].endswith(":teleguard")
        assert json.loads(kwargs["Message"]) == {"id": "thr_1", "score": 9.1}
        assert kwargs["MessageAttributes"]["topic"]["StringValue"] == "threat.created"

    def test_failure_returns_false(self, publisher, sns):
        sns.publish.side_effect = ClientError(
            {"Error": {"Code": "NotFound", "Message": "Topic does not exist"}}, "Publish"
        )
        assert publisher.publish(TOPIC_ACTION_CREATED, {"id": "act_1"}) is False

    def test_topic_arn_required(self, monkeypatch):
        monkeypatch.delenv("TELEGUARD_SNS_TOPIC_ARN", raising=False)
        with pytest.raises(ValueError):
            SNSEventPublisher(sns_client=MagicMock())

    @patch("teleguard.publishing.boto3.client")
    def test_builds_client_for_region(self, mock_boto3_client):
        SNSEventPublisher(topic_arn="arn:aws:sns:eu-west-1:1:tg", region="eu-west-1")
        mock_boto3_client.assert_called_once_with("sns", region_name="eu-west-1")
