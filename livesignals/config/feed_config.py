"""
Default feed sources shared by the pipeline and the relay worker.
"""

from typing import List

DEFAULT_GITHUB_REPOS: List[str] = [
    "microsoft/autogen",
    "microsoft/semantic-kernel",
    "vercel/ai",
    "vllm-project/vllm",
    "modelcontextprotocol/servers",
    "ollama/ollama",
]

DEFAULT_BLOG_FEEDS: List[str] = [
    "https://openai.com/news/rss.xml",
    "https://blog.research.google/atom.xml",
    "https://blog.google/products-and-platforms/products/gemini/rss/",
    "https://github.blog/feed/",
    "https://github.blog/category/ai-and-ml/github-copilot/feed/",
    "https://engineering.fb.com/category/ml-applications/feed/",
    "https://blogs.nvidia.com/feed/",
    "https://blog.cloudflare.com/tag/ai/",
    "https://devblogs.microsoft.com/engineering-at-microsoft/feed/",
    "https://raw.githubusercontent.com/Olshansk/rss-feeds/main/feeds/feed_anthropic.xml",
]

# Tag pages that publish their feed under a different path
_FEED_URL_ALIASES = {
    "https://blog.cloudflare.com/tag/ai/": "https://blog.cloudflare.com/tag/ai/rss/",
    "https://blog.cloudflare.com/tag/ai": "https://blog.cloudflare.com/tag/ai/rss/",
}


def normalize_feed_url(url: str) -> str:
    """Trim a feed URL and map known tag pages onto their RSS endpoint."""
    trimmed = url.strip()
    return _FEED_URL_ALIASES.get(trimmed, trimmed)
