"""edgeattach: interactive exec and live log sessions for edge workloads.

Attaches a local terminal (or a log tail) to an agent or microservice that a
control plane manages, over a single msgpack-framed websocket.

Quickstart::

    from edgeattach.attach import exec_microservice
    from edgeattach.config import NamespaceStore
    from edgeattach.controlplane.cache import ResourceCaches

    store = NamespaceStore.load()
    with ResourceCaches(store) as caches:
        exec_microservice(caches, "default", "my-app/my-msvc")
"""

__version__ = "0.1.0"
