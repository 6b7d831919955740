"""Container engine adapters.

Both supported engines (docker and podman) are driven through the Docker-compatible
API exposed on their local control socket. The lifecycle controller only sees the
`ContainerEngine` interface and the per-engine exit event dispatcher.
"""
