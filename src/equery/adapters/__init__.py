"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Adapters producing keyed fetcher definitions.
"""

from .rpc import RpcNamespace, RpcProcedure, create_rpc_adapter

__all__ = ["create_rpc_adapter", "RpcNamespace", "RpcProcedure"]
