"""
keel - versioned, validated module configuration for a running application.

The engine keeps an ordered set of modules (server, data, auth, media,
workflow), validates every change against each module's schema, rebuilds
the runtime context and persists the tree with an audit trail of diffs.

Entry points:
    keel.app.App                          composition root
    keel.modules.VersionedConfigManager   store-backed engine
    keel.modules.ModuleManager            transient engine
"""

__version__ = "0.1.0"
