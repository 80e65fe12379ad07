"""
Unit tests for FeedNormalizer.

Covers RSS and Atom parsing, GitHub payload conversion, text cleaning and
malformed-document handling.
"""

import pytest

from livesignals.ingestion.feed_normalizer import FeedNormalizer, clean_text


class TestCleanText:

    def test_strips_tags_and_collapses_whitespace(self):
        assert clean_text("<p>Hello   <b>world</b></p>\n\n<br/>") == "Hello world"

    def test_decodes_fixed_entities_only(self):
        assert clean_text("Fish &amp; chips&nbsp;&quot;today&quot; it&#39;s &lt;fine&gt;") == \
            "Fish & chips \"today\" it's &lt;fine&gt;"

    def test_entities_are_case_insensitive(self):
        assert clean_text("A&NBSP;B &AMP; C") == "A B & C"

    def test_empty_values(self):
        assert clean_text(None) == ""
        assert clean_text("   ") == ""


class TestParseFeed:

    def test_rss_items(self, rss_document):
        items = FeedNormalizer().parse_feed(rss_document, "https://www.github.blog/feed/")

        assert len(items) == 2
        first = items[0]
        assert first.kind == "blog-post"
        assert first.source == "github.blog"
        assert first.id == "rss-github.blog-0-Scaling inference on Kub"
        assert first.title == "Scaling inference on Kubernetes"
        assert first.url == "https://github.blog/2024-01-02-scaling-inference/"
        assert first.published_at == "Tue, 02 Jan 2024 10:00:00 GMT"
        assert "<p>" not in first.content
        assert first.content.startswith("We cut p99 latency by 40% with request batching.")

    def test_atom_entries(self, atom_document):
        items = FeedNormalizer().parse_feed(atom_document, "https://blog.research.google/atom.xml")

        assert len(items) == 1
        entry = items[0]
        assert entry.id.startswith("atom-blog.research.google-0-")
        assert entry.url == "https://blog.research.google/agents-observability"
        # updated wins over published
        assert entry.published_at == "2024-03-01T12:00:00Z"
        assert entry.content == "Tracing agent runs end to end with OpenTelemetry."

    def test_atom_link_falls_back_to_id(self):
        document = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>T</title>
  <entry>
    <title>No link here</title>
    <id>https://example.org/entries/7</id>
    <published>2024-02-01T00:00:00Z</published>
    <content type="html">&lt;p&gt;Body text&lt;/p&gt;</content>
  </entry>
</feed>"""
        items = FeedNormalizer().parse_feed(document, "https://example.org/feed")

        assert items[0].url == "https://example.org/entries/7"
        assert items[0].published_at == "2024-02-01T00:00:00Z"
        assert items[0].content == "Body text"

    def test_rss_defaults_for_missing_fields(self):
        document = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>T</title>
<item><description>Only a body</description></item>
</channel></rss>"""
        items = FeedNormalizer().parse_feed(document, "https://example.com/rss")

        assert items[0].title == "Untitled"
        assert items[0].url == ""
        assert items[0].published_at is None

    def test_content_truncation(self):
        body = "word " * 2000
        document = f"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>T</title>
<item><title>Long</title><link>https://example.com/long</link><description>{body}</description></item>
</channel></rss>"""

        items = FeedNormalizer(max_content=2500).parse_feed(document, "https://example.com/rss")
        assert len(items[0].content) == 2500

        items = FeedNormalizer().parse_feed(document, "https://example.com/rss", max_content=100)
        assert len(items[0].content) == 100

    def test_feed_entities_are_decoded_by_feedparser(self):
        document = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>T</title>
<item><title>Agents&#8217; memory</title><link>https://example.com/a</link>
<description>Notes</description></item>
</channel></rss>"""

        items = FeedNormalizer().parse_feed(document, "https://example.com/rss")

        assert items[0].title == "Agents\u2019 memory"

    def test_bytes_honor_prolog_encoding(self, latin1_rss_document):
        items = FeedNormalizer().parse_feed(latin1_rss_document, "https://latin.example/feed")

        assert items[0].title == "Kubernetes café release notes"
        assert items[0].content == "Résumé of the backend API changes."

    def test_text_is_not_redecoded_with_prolog_encoding(self, latin1_rss_document):
        text = latin1_rss_document.decode("iso-8859-1")

        items = FeedNormalizer().parse_feed(text, "https://latin.example/feed")

        assert items[0].title == "Kubernetes café release notes"

    @pytest.mark.parametrize("document", [
        "<rss><channel><item><title>Broken</title></channel>",
        "<rss><channel><item><title>Unclosed & bad</title></item></channel></rss>",
    ])
    def test_malformed_document_yields_nothing(self, document):
        assert FeedNormalizer().parse_feed(document, "https://example.com/rss") == []


class TestGithubPayloads:

    def test_rest_releases(self, github_releases):
        items = FeedNormalizer().parse_github_releases(github_releases, "microsoft/autogen")

        assert len(items) == 1
        release = items[0]
        assert release.id == "gh-microsoft/autogen-101"
        assert release.title == "microsoft/autogen: v0.4.0"
        assert release.source == "github.com/microsoft/autogen"
        assert release.kind == "github-release"
        assert release.published_at == "2024-02-10T08:00:00Z"

    def test_rest_release_without_name_or_body(self):
        payload = [{"id": 5, "name": None, "tag_name": "v2", "html_url": "https://github.com/a/b/releases/v2",
                    "body": None, "published_at": "2024-01-01T00:00:00Z"}]
        items = FeedNormalizer().parse_github_releases(payload, "a/b", id_prefix="gh-rest")

        assert items[0].id == "gh-rest-a/b-5"
        assert items[0].title == "a/b: v2"
        assert items[0].content == "v2"

    def test_rest_non_list_payload(self):
        assert FeedNormalizer().parse_github_releases({"message": "Not Found"}, "a/b") == []

    def test_graphql_aliases(self):
        data = {
            "r0": {"releases": {"nodes": [{
                "name": None, "tagName": "v1.2", "description": "Fixes",
                "publishedAt": "2024-05-01T00:00:00Z", "url": "https://github.com/a/b/releases/v1.2",
            }]}},
            "r1": {"releases": {"nodes": []}},
            "r2": None,
        }
        items = FeedNormalizer().parse_github_graphql(data, ["a/b", "c/d", "e/f"])

        assert [item.id for item in items] == ["gh-graphql-a/b"]
        assert items[0].title == "a/b: v1.2"
        assert items[0].content == "Fixes"
