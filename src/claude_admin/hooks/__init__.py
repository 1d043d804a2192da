"""Hook notification ingress."""

from .ingress import HOOK_STATES, EventIngress, infer_state

__all__ = ["EventIngress", "HOOK_STATES", "infer_state"]
