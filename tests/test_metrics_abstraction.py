"""
Unit Tests for Metrics Abstraction Layer

This module tests the metrics abstraction layer that lets handlers and the
social publishing flow record metrics without knowing the backend (Telegraf,
NoOp).

Test Coverage:
- MetricsClient interface implementations
- Backend selection via factory function
- Error handling on close
- Integration with application settings and the request middleware
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from blogify.app.metrics import (
    MetricsClient,
    NoOpMetricsClient,
    TelegrafCompatibilityClient,
    create_metrics_client,
)


class TestMetricsClientInterface:
    """Test the abstract MetricsClient interface."""

    def test_interface_is_abstract(self):
        """MetricsClient should be abstract and not instantiable."""
        with pytest.raises(TypeError):
            MetricsClient()


class TestNoOpMetricsClient:
    """Test the NoOpMetricsClient implementation."""

    @pytest.fixture
    def noop_client(self):
        return NoOpMetricsClient()

    def test_noop_operations(self, noop_client):
        """NoOp operations should not raise exceptions."""
        noop_client.increment("test.counter", 1, {"tag": "value"})
        noop_client.increment("test.counter")
        noop_client.gauge("test.gauge", 42.5, {"tag": "value"})
        noop_client.timer("test.timer", 0.001)

    @pytest.mark.asyncio
    async def test_noop_connect_and_close(self, noop_client):
        await noop_client.connect()
        await noop_client.close()


class TestTelegrafCompatibilityClient:
    """Test the TelegrafCompatibilityClient wrapper."""

    @pytest.fixture
    def mock_telegraf_client(self):
        """Create a mock TelegrafStatsdClient."""
        mock = Mock()
        mock.increment = Mock()
        mock.gauge = Mock()
        mock.timer = Mock()
        mock.connect = AsyncMock()
        mock.close = AsyncMock()
        return mock

    @pytest.fixture
    def telegraf_client(self, mock_telegraf_client):
        return TelegrafCompatibilityClient(mock_telegraf_client)

    def test_telegraf_increment(self, telegraf_client, mock_telegraf_client):
        """Telegraf increment should delegate to underlying client."""
        telegraf_client.increment("test.counter", 3, {"method": "POST"})

        mock_telegraf_client.increment.assert_called_once_with(
            "test.counter", 3, tag_dict={"method": "POST"}
        )

    def test_telegraf_gauge(self, telegraf_client, mock_telegraf_client):
        telegraf_client.gauge("test.gauge", 42.0, {"status": "ok"})

        mock_telegraf_client.gauge.assert_called_once_with(
            "test.gauge", 42.0, tag_dict={"status": "ok"}
        )

    def test_telegraf_timer(self, telegraf_client, mock_telegraf_client):
        telegraf_client.timer("test.timer", 1.234, {"endpoint": "/"})

        mock_telegraf_client.timer.assert_called_once_with(
            "test.timer", 1.234, tag_dict={"endpoint": "/"}
        )

    def test_telegraf_increment_no_tags(self, telegraf_client, mock_telegraf_client):
        """Telegraf increment should handle None tag_dict gracefully."""
        telegraf_client.increment("test.counter")

        mock_telegraf_client.increment.assert_called_once_with(
            "test.counter", 1, tag_dict={}
        )

    @pytest.mark.asyncio
    async def test_telegraf_connect_and_close(self, telegraf_client, mock_telegraf_client):
        await telegraf_client.connect()
        await telegraf_client.close()

        mock_telegraf_client.connect.assert_called_once()
        mock_telegraf_client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_telegraf_close_error_handling(self):
        """TelegrafCompatibilityClient should handle close errors gracefully."""
        mock_client = Mock()
        mock_client.close = AsyncMock(side_effect=Exception("Connection error"))

        await TelegrafCompatibilityClient(mock_client).close()


class TestMetricsClientFactory:
    """Test the create_metrics_client factory function."""

    def test_factory_creates_noop_client(self):
        assert isinstance(create_metrics_client("none"), NoOpMetricsClient)

    @patch("blogify.app.metrics.TelegrafStatsdClient")
    def test_factory_creates_telegraf_client(self, mock_telegraf_class):
        mock_instance = Mock()
        mock_telegraf_class.return_value = mock_instance

        client = create_metrics_client("telegraf", host="localhost", port=8125, debug=True)

        assert isinstance(client, TelegrafCompatibilityClient)
        assert client.client is mock_instance
        mock_telegraf_class.assert_called_once_with(host="localhost", port=8125, debug=True)

    def test_factory_uses_preconfigured_telegraf_client(self):
        mock_client = Mock()

        client = create_metrics_client("telegraf", telegraf_client=mock_client)

        assert isinstance(client, TelegrafCompatibilityClient)
        assert client.client is mock_client

    def test_factory_handles_invalid_backend(self):
        with pytest.raises(ValueError, match="Unknown metrics backend: invalid"):
            create_metrics_client("invalid")

    def test_factory_handles_case_insensitive_backends(self):
        clients = [create_metrics_client(name) for name in ("NONE", "None", "none")]
        assert all(isinstance(c, NoOpMetricsClient) for c in clients)


class TestMetricsIntegration:
    """Test integration with application components."""

    def test_appkey(self):
        from blogify.app.config import MetricsClientAppKey
        from aiohttp import web

        assert isinstance(MetricsClientAppKey, web.AppKey)
        assert "metrics_client" in str(MetricsClientAppKey)

    @pytest.mark.asyncio
    async def test_requests_are_counted(self, client, metrics_client):
        resp = await client.get("/internal/alive")
        assert resp.status == 200

        assert metrics_client.tags_for("blogify.server.request.count") == [
            {"path": "/internal/alive", "method": "GET", "status": 200}
        ]
        assert [name for (name, _, _) in metrics_client.timers] == [
            "blogify.server.request.time"
        ]

    @pytest.mark.asyncio
    async def test_route_templates_used_as_path(self, client, metrics_client):
        await client.get("/blog/missing-post")

        assert metrics_client.tags_for("blogify.server.request.count") == [
            {"path": "/blog/{slug}", "method": "GET", "status": 404}
        ]
