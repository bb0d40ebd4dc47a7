"""Tests for entry point based middleware discovery"""

from unittest.mock import MagicMock, patch

from conduit.middleware import discovery
from conduit.middleware.builtin import ToLowerMiddleware, ToUpperMiddleware
from conduit.middleware.testing import RecordingMiddleware


def _entry_point(name, loaded=None, error=None):
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = loaded
    return ep


class TestMiddlewareDiscovery:
    """Discovery via the conduit.middleware group"""

    def setup_method(self):
        """Reset discovery state before each test"""
        discovery.reset()

    def teardown_method(self):
        """Clean up after each test"""
        discovery.reset()

    @patch('importlib.metadata.entry_points')
    def test_discover_loads_entry_points(self, mock_eps):
        mock_eps.return_value = [
            _entry_point('lower', ToLowerMiddleware),
            _entry_point('upper', ToUpperMiddleware),
        ]

        found = discovery.discover_middleware()

        mock_eps.assert_called_once_with(group='conduit.middleware')
        assert found == {'lower': ToLowerMiddleware, 'upper': ToUpperMiddleware}

    @patch('importlib.metadata.entry_points')
    def test_whitelist_filters_entry_points(self, mock_eps):
        lower = _entry_point('lower', ToLowerMiddleware)
        upper = _entry_point('upper', ToUpperMiddleware)
        mock_eps.return_value = [lower, upper]

        found = discovery.discover_middleware(allowed=['upper'])

        assert list(found) == ['upper']
        lower.load.assert_not_called()

    @patch('importlib.metadata.entry_points')
    def test_handles_import_error_gracefully(self, mock_eps):
        """Should skip middleware with missing dependencies"""
        mock_eps.return_value = [_entry_point('broken', error=ImportError("Missing dependency"))]

        assert 'broken' not in discovery.discover_middleware()

    @patch('importlib.metadata.entry_points')
    def test_handles_load_exception_gracefully(self, mock_eps):
        """Should handle unexpected exceptions during load"""
        mock_eps.return_value = [_entry_point('error', error=RuntimeError("Unexpected error"))]

        assert 'error' not in discovery.discover_middleware()

    def test_get_middleware_caches_result(self):
        """Should cache discovery results"""
        discovery.get_middleware()

        with patch.object(discovery, 'discover_middleware') as mock:
            discovery.get_middleware()
            mock.assert_not_called()

    def test_get_middleware_class_returns_none_for_unknown(self):
        assert discovery.get_middleware_class('nonexistent_middleware') is None

    def test_builtin_middleware_installed(self):
        """The package registers its own middleware through entry points"""
        available = discovery.get_available_middleware()

        for name in ('lower', 'upper', 'prefix', 'request-logger', 'error-handler'):
            assert name in available
        assert discovery.get_middleware_class('lower') is ToLowerMiddleware


class TestMiddlewareRegistration:
    """Manual registration"""

    def setup_method(self):
        discovery.reset()

    def teardown_method(self):
        discovery.reset()

    def test_register_middleware(self):
        discovery.register_middleware('recording', RecordingMiddleware)

        assert discovery.get_middleware_class('recording') is RecordingMiddleware
        assert 'recording' in discovery.get_available_middleware()

    def test_registered_overrides_discovered(self):
        discovery.register_middleware('lower', ToUpperMiddleware)

        assert discovery.get_middleware_class('lower') is ToUpperMiddleware

    def test_reset_clears_registrations(self):
        discovery.register_middleware('recording', RecordingMiddleware)
        discovery.reset()

        assert discovery.get_middleware_class('recording') is None
