import pytest

from sql_analyzer.prompts.loader import PromptLoader, split_front_matter

VARIABLES = {
    "sql": "SELECT *\nFROM orders",
    "raw_sql": "select * from orders",
    "database_type": "postgresql",
    "statement_type": "SELECT",
    "context": {"table_rows": 5000},
}


def test_prompt_loader_strips_front_matter():
    loader = PromptLoader()
    content = loader.load("analysis/performance.md")
    assert not content.startswith("---")
    assert "{{ sql }}" in content


def test_prompt_metadata_from_front_matter():
    loader = PromptLoader()
    metadata = loader.get_metadata("analysis/standards.md")
    assert metadata["name"] == "standards"
    assert metadata["version"] == 1


def test_build_uses_front_matter_system_prompt():
    prompts = PromptLoader().build("performance", VARIABLES, category="analysis")
    assert prompts.system_prompt.startswith("You are a senior postgresql performance engineer")
    assert "FROM orders" in prompts.user_prompt
    assert "- table_rows: 5000" in prompts.user_prompt
    assert "---" not in prompts.user_prompt


def test_build_uses_template_blocks():
    prompts = PromptLoader().build("security", VARIABLES, category="analysis")
    assert "security reviewer" in prompts.system_prompt
    assert "security reviewer" not in prompts.user_prompt
    assert prompts.user_prompt.startswith("Audit the following SQL statement (SELECT)")


def test_every_analysis_template_builds():
    loader = PromptLoader()
    for name in ("performance", "security", "standards"):
        prompts = loader.build(name, VARIABLES, category="analysis")
        assert prompts.system_prompt
        assert "JSON" in prompts.user_prompt


def test_render_without_context():
    rendered = PromptLoader().render(
        "analysis/standards.md", **{**VARIABLES, "context": {}}
    )
    assert "Additional context" not in rendered


def test_missing_prompt():
    loader = PromptLoader()
    with pytest.raises(FileNotFoundError):
        loader.build("cost", VARIABLES, category="analysis")
    with pytest.raises(FileNotFoundError):
        loader.load("analysis/cost.md")


def test_split_front_matter_without_header():
    assert split_front_matter("plain text") == ({}, "plain text")
