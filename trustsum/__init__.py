"""
Trust-Summary Package
=====================
Turns a source document into a trust-scored summary: several independent
candidate summaries, their mutual consistency, sentence-level fact checks
against the source, and a fused trust verdict.
"""

from trustsum.orchestrator import TrustSummarizer
from trustsum.schemas import SummaryResult, TrustVerdict

__all__ = ["TrustSummarizer", "SummaryResult", "TrustVerdict"]
