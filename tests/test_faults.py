"""
Tests for the fault taxonomy.
"""

import logging

import pytest

from orderlink.faults import (
    AuthenticationFault,
    AuthorizationFault,
    ConfigMissingFault,
    Fault,
    FaultDomain,
    InfrastructureFault,
    InvalidStateFault,
    NotFoundFault,
    QueryFault,
    Severity,
)
from orderlink.sockets.faults import WS_RATE_LIMIT_EXCEEDED, WS_UNSUPPORTED_EVENT


class TestFaultBase:
    def test_requires_code_message_domain(self):
        with pytest.raises(TypeError):
            Fault(code="X")

    def test_str_includes_code(self):
        fault = Fault(code="ORDER_GONE", message="Order gone", domain=FaultDomain.FLOW)
        assert str(fault) == "[ORDER_GONE] Order gone"
        assert fault.public is False

    def test_to_dict(self):
        fault = InvalidStateFault("Chat is not active for this order")
        data = fault.to_dict()
        assert data["code"] == "INVALID_STATE"
        assert data["message"] == "Chat is not active for this order"


class TestPublicExposure:
    def test_flow_faults_are_public(self):
        assert InvalidStateFault("Invalid coordinates").public
        assert NotFoundFault("Agent").public

    def test_security_faults_are_public(self):
        assert AuthorizationFault().public
        assert AuthenticationFault("Token not provided").public

    def test_infrastructure_faults_are_private(self):
        fault = InfrastructureFault("database", "create_message", "disk full")
        assert fault.public is False
        assert fault.retryable is True
        assert fault.severity == Severity.ERROR

    def test_query_fault_is_private(self):
        assert QueryFault("chat_messages", "insert", "locked").public is False


class TestMessages:
    def test_not_found_message(self):
        assert NotFoundFault("Agent", "A9").message == "Agent not found"

    def test_authentication_close_code(self):
        assert AuthenticationFault.ws_close_code == 4401

    def test_authorization_default_message(self):
        assert AuthorizationFault().message == "You are not authorized to perform this action"

    def test_config_missing(self):
        fault = ConfigMissingFault("auth.access_secret")
        assert "auth.access_secret" in fault.message

    def test_socket_faults(self):
        assert WS_RATE_LIMIT_EXCEEDED(60).message == "Too many requests"
        assert WS_UNSUPPORTED_EVENT("dance").message == "Unsupported event type: dance"


class TestClientMessage:
    def test_public_fault_shows_its_message(self):
        fault = InvalidStateFault("Invalid coordinates")
        assert fault.client_message("Failed to update location") == "Invalid coordinates"

    def test_private_fault_uses_fallback(self):
        fault = InfrastructureFault("cache", "activate_chat", "order O1")
        assert fault.client_message("Failed to activate chat") == "Failed to activate chat"

    def test_log_levels(self):
        assert InvalidStateFault("x").severity.log_level == logging.INFO
        assert AuthorizationFault().severity.log_level == logging.WARNING
        assert InfrastructureFault("db", "q", "down").severity.log_level == logging.ERROR
        assert ConfigMissingFault("auth.access_secret").severity.log_level == logging.CRITICAL

    def test_domain_is_string_enum(self):
        assert FaultDomain.CACHE == "cache"
        assert InvalidStateFault("x").to_dict()["domain"] == "flow"
