"""Personal TED talk catalog: scrape talk pages, store them once, link them to users."""

__version__ = "0.1.0"
