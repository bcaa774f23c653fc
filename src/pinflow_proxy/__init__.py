"""pinflow-proxy.

Scores how well a video fits a niche: downloads it, hands it to Gemini, and
returns a structured {score, reason, confidence} verdict.
"""

__version__ = "0.1.0"
