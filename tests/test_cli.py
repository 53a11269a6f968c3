"""Tests for the command line interface."""

import json

from typer.testing import CliRunner

from armsmith.ab.traffic import hash_bucket
from armsmith.cli import app

runner = CliRunner()


def write_snapshot(path, control=(5000, 500), treatment=(5000, 750)):
    payload = {
        "experiment_name": "checkout",
        "started_at": "2024-01-01T00:00:00Z",
        "variants": [
            {
                "key": "control",
                "is_control": True,
                "pulls": control[0],
                "successes": control[1],
                "failures": control[0] - control[1],
            },
            {
                "key": "treatment",
                "pulls": treatment[0],
                "successes": treatment[1],
                "failures": treatment[0] - treatment[1],
            },
        ],
    }
    path.write_text(json.dumps(payload))
    return path


class TestBucketCommand:
    """Test the bucket command."""

    def test_prints_bucket(self):
        result = runner.invoke(app, ["bucket", "user-1", "--experiment", "exp"])
        assert result.exit_code == 0
        assert f"bucket: {hash_bucket('user-1', 'exp')}" in result.output

    def test_prints_inclusion(self):
        result = runner.invoke(app, ["bucket", "user-1", "-e", "exp", "-p", "100"])
        assert result.exit_code == 0
        assert "included at 100%: yes" in result.output


class TestEvaluateCommand:
    """Test the evaluate command."""

    def test_default_rules(self, tmp_path):
        path = write_snapshot(tmp_path / "data.json")
        result = runner.invoke(app, ["evaluate", str(path)])
        assert result.exit_code == 0
        decision = json.loads(result.output)
        assert decision["should_stop"] is True
        assert decision["winning_variant"] == "treatment"

    def test_with_config(self, tmp_path):
        path = write_snapshot(tmp_path / "data.json", control=(200, 20), treatment=(200, 30))
        config = tmp_path / "experiments.yaml"
        config.write_text(
            "- name: checkout\n"
            "  candidate_keys: [control, treatment]\n"
            "  stopping:\n"
            "    minimum_sample_size: 500\n"
        )
        result = runner.invoke(app, ["evaluate", str(path), "--config", str(config)])
        assert result.exit_code == 0
        decision = json.loads(result.output)
        assert decision["should_stop"] is False
        assert decision["rule"] == "MinimumSampleSize"

    def test_missing_definition(self, tmp_path):
        path = write_snapshot(tmp_path / "data.json")
        config = tmp_path / "experiments.yaml"
        config.write_text("- name: other\n  candidate_keys: [a]\n")
        result = runner.invoke(app, ["evaluate", str(path), "-c", str(config)])
        assert result.exit_code == 2
