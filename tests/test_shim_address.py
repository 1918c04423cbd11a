"""
Tests for shim socket address resolution.
"""

import hashlib

import pytest

from teardown_harness.errors import AddressResolutionError
from teardown_harness.shim.address import dial_path, socket_address


class TestSocketAddress:
    def test_matches_containerd_layout(self) -> None:
        digest = hashlib.sha256(
            b"/run/containerd/containerd.sock/k8s.io/abc123"
        ).hexdigest()
        address = socket_address("k8s.io", "/run/containerd/containerd.sock", "abc123")
        assert address == f"unix:///run/containerd/s/{digest}"

    def test_is_deterministic(self) -> None:
        first = socket_address("k8s.io", "/run/containerd/containerd.sock", "abc")
        second = socket_address("k8s.io", "/run/containerd/containerd.sock", "abc")
        assert first == second

    def test_differs_per_sandbox(self) -> None:
        endpoint = "/run/containerd/containerd.sock"
        assert socket_address("k8s.io", endpoint, "a") != socket_address("k8s.io", endpoint, "b")

    def test_differs_per_namespace(self) -> None:
        endpoint = "/run/containerd/containerd.sock"
        assert socket_address("k8s.io", endpoint, "a") != socket_address("default", endpoint, "a")

    def test_custom_socket_root(self) -> None:
        address = socket_address("k8s.io", "/c.sock", "abc", socket_root="/tmp/state")
        assert address.startswith("unix:///tmp/state/s/")

    def test_empty_namespace(self) -> None:
        with pytest.raises(AddressResolutionError):
            socket_address("", "/c.sock", "abc")

    def test_empty_sandbox_id(self) -> None:
        with pytest.raises(AddressResolutionError):
            socket_address("k8s.io", "/c.sock", "")


class TestDialPath:
    def test_strips_unix_scheme(self) -> None:
        assert dial_path("unix:///run/containerd/s/abc") == "/run/containerd/s/abc"

    def test_plain_path(self) -> None:
        assert dial_path("/run/containerd/s/abc") == "/run/containerd/s/abc"

    def test_unsupported_scheme(self) -> None:
        with pytest.raises(AddressResolutionError, match="vsock"):
            dial_path("vsock://3:1024")

    @pytest.mark.parametrize("address", ["", "unix://"])
    def test_empty(self, address: str) -> None:
        with pytest.raises(AddressResolutionError):
            dial_path(address)
