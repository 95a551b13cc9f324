"""
storyloom - dynamic content resolution for LLM-augmented interactive stories.
"""

__version__ = "1.0.0"
