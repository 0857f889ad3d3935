"""plan-verifier: catch hallucinated references in AI-generated coding plans."""

__version__ = "0.1.0"
