"""!
@brief ZT Provisioner package root.
@details Modules under this namespace detect, install, and join a host to a
ZeroTier overlay network, then apply the host routing configuration.
"""

__all__ = [
    "main",
    "orchestrator",
    "detect",
    "msi_install",
    "join_loop",
    "node_identity",
    "system_config",
    "client_cli",
    "client_paths",
    "services",
    "registry_tools",
    "exec_utils",
    "logging_ext",
    "confirm",
    "progress",
    "elevation",
    "main_state",
    "constants",
    "version",
]
