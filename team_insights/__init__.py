"""Team Insights: engineering team analytics for GitHub repositories."""

__version__ = "1.0.0"
