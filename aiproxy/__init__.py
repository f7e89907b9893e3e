"""
Local AI API gateway relaying OpenAI-style chat completions to configured
upstream models.
"""

__version__ = "1.0.0"
