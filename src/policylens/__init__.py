"""PolicyLens - Calico flow log analysis.

Summarizes cluster traffic per namespace, explains denied flows by
tracing the responsible policies, and drafts egress-allow policies
from observed traffic.
"""

__version__ = "0.1.0"
