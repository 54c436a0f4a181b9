"""Tests for the command line entry point."""

import json

import pytest

from fixplan.audit import CheckCategory, GeographicScope
from fixplan.cli import EXIT_ERROR, EXIT_OK, build_parser, config_from_args, main


def _config(*argv):
    return config_from_args(build_parser().parse_args(list(argv)))


class TestConfigFromArgs:
    def test_defaults(self):
        config = _config("https://example.com")
        assert config.url == "https://example.com"
        assert config.crawl_limit == 25
        assert config.selected_categories == list(CheckCategory)
        assert not config.use_psi
        assert config.check_mobile and config.check_desktop

    def test_options(self):
        config = _config(
            "https://example.com",
            "--competitor", "https://a.com",
            "--competitor", "https://b.com",
            "--crawl-limit", "5",
            "--keywords",
            "--scope", "regional",
            "--location", "Ohio",
            "--psi",
            "--no-desktop",
            "--skip-check", "reputation",
            "--skip-check", "clarity",
        )
        assert config.competitors == ["https://a.com", "https://b.com"]
        assert config.crawl_limit == 5
        assert config.enable_keyword_analysis
        assert config.geographic_scope == GeographicScope.REGIONAL
        assert config.target_location == "Ohio"
        assert config.use_psi and config.check_mobile and not config.check_desktop
        assert CheckCategory.REPUTATION not in config.selected_categories
        assert CheckCategory.CLARITY not in config.selected_categories
        assert len(config.selected_categories) == len(CheckCategory) - 2

    def test_unknown_check_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["https://example.com", "--skip-check", "nope"])


class TestMain:
    def test_invalid_url_exits_with_error(self):
        assert main(["not a url"]) == EXIT_ERROR

    def test_too_many_competitors(self):
        argv = ["https://example.com"]
        for host in ("a", "b", "c", "d"):
            argv += ["--competitor", f"https://{host}.com"]
        assert main(argv) == EXIT_ERROR

    def test_writes_fix_plan(self, site, page_builder, tmp_path, monkeypatch):
        monkeypatch.setenv("FIXPLAN_REQUEST_TIMEOUT", "5")
        site.add("/", page_builder())
        site.add("/robots.txt", "User-agent: *\n", content_type="text/plain")
        out = tmp_path / "plan.json"

        assert main([site.url + "/", "--output", str(out), "--skip-check", "reputation"]) == EXIT_OK

        plan = json.loads(out.read_text(encoding="utf-8"))
        assert plan["config"]["url"] == site.url + "/"
        assert [i["id"] for i in plan["issues"]] == ["no-https"]
        assert plan["score"] == 88
        assert plan["summary"]["pages_analyzed"] == 1
