"""QTweet — relay followed Twitter accounts into chat channels."""

__version__ = "0.4.0"
