"""Pytest configuration and fixtures."""

import json
import os
import sys

import boto3
import pytest
from moto import mock_aws

# Add backend/ to path so the studiefy package imports without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set environment variables for testing
os.environ["ENVIRONMENT"] = "test"
os.environ["DECKS_TABLE"] = "studiefy-decks-test"
os.environ["FLASHCARDS_TABLE"] = "studiefy-flashcards-test"
os.environ["FLASHCARD_STATES_TABLE"] = "studiefy-flashcard-states-test"
os.environ["FLASHCARD_REVIEWS_TABLE"] = "studiefy-flashcard-reviews-test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["POWERTOOLS_SERVICE_NAME"] = "studiefy-test"
os.environ["POWERTOOLS_TRACE_DISABLED"] = "true"
os.environ.setdefault("AWS_DEFAULT_REGION", "sa-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

DECKS_TABLE = "studiefy-decks-test"
FLASHCARDS_TABLE = "studiefy-flashcards-test"
STATES_TABLE = "studiefy-flashcard-states-test"
REVIEWS_TABLE = "studiefy-flashcard-reviews-test"


@pytest.fixture
def dynamodb_tables():
    """Create mock DynamoDB tables (decks, flashcards, states, reviews)."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="sa-east-1")

        for table_name, range_key in (
            (DECKS_TABLE, "deck_id"),
            (FLASHCARDS_TABLE, "flashcard_id"),
            (STATES_TABLE, "flashcard_id"),
            (REVIEWS_TABLE, "review_id"),
        ):
            table = dynamodb.create_table(
                TableName=table_name,
                KeySchema=[
                    {"AttributeName": "user_id", "KeyType": "HASH"},
                    {"AttributeName": range_key, "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "user_id", "AttributeType": "S"},
                    {"AttributeName": range_key, "AttributeType": "S"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()

        yield dynamodb


@pytest.fixture
def api_gateway_event():
    """Create a base API Gateway HTTP API event."""

    def _create_event(
        method: str = "GET",
        path: str = "/",
        body: dict = None,
        headers: dict = None,
        path_parameters: dict = None,
        query_string_parameters: dict = None,
        user_id: str = "test-user-id",
    ):
        event = {
            "version": "2.0",
            "routeKey": f"{method} {path}",
            "rawPath": path,
            "rawQueryString": "",
            "headers": headers or {"content-type": "application/json"},
            "requestContext": {
                "accountId": "123456789012",
                "apiId": "api-id",
                "authorizer": {
                    "jwt": {
                        "claims": {
                            "sub": user_id,
                            "iss": "https://auth.example.com",
                        },
                        "scopes": ["openid", "profile"],
                    }
                },
                "domainName": "api.example.com",
                "domainPrefix": "api",
                "http": {
                    "method": method,
                    "path": path,
                    "protocol": "HTTP/1.1",
                    "sourceIp": "127.0.0.1",
                    "userAgent": "pytest",
                },
                "requestId": "request-id",
                "routeKey": f"{method} {path}",
                "stage": "$default",
                "time": "01/Jan/2024:00:00:00 +0000",
                "timeEpoch": 1704067200000,
            },
            "pathParameters": path_parameters or {},
            "stageVariables": None,
            "isBase64Encoded": False,
        }
        if body is not None:
            event["body"] = json.dumps(body)
        if query_string_parameters:
            event["queryStringParameters"] = query_string_parameters
            event["rawQueryString"] = "&".join(f"{k}={v}" for k, v in query_string_parameters.items())
        return event

    return _create_event


@pytest.fixture
def lambda_context():
    """Create a mock Lambda context."""

    class MockContext:
        function_name = "studiefy-api-test"
        memory_limit_in_mb = 256
        invoked_function_arn = "arn:aws:lambda:sa-east-1:123456789012:function:studiefy-api-test"
        aws_request_id = "test-request-id"

    return MockContext()
