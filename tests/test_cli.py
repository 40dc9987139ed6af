import json

from recsys.cli import main


def test_cli_load_train_recommend(tmp_path, capsys):
    db = str(tmp_path / "cli.duckdb")
    src = tmp_path / "ratings.csv"
    src.write_text("user_id,item_id\nu1,a\nu1,b\nu2,b\nu2,c\n")

    assert main(["--db", db, "load", "--input", str(src), "--table", "ratings"]) == 0
    assert main(["--db", db, "train", "--model-id", "1", "--dataset", "ratings", "--policy", "random"]) == 0
    capsys.readouterr()

    assert main(["--db", db, "recommend", "--model-id", "1", "--user-id", "u1", "--dataset", "ratings",
                 "--min-score", "-1", "--k", "2"]) == 0
    out = capsys.readouterr().out
    summary = json.loads(out[: out.rindex("[DONE]")])
    assert len(summary["recommendations"]) == 2

    assert main(["--db", db, "status", "--model-id", "1"]) == 0
    out = capsys.readouterr().out
    assert json.loads(out[: out.rindex("[DONE]")])["status"] == "ready"


def test_cli_reports_errors(tmp_path, capsys):
    db = str(tmp_path / "cli.duckdb")
    assert main(["--db", db, "status", "--model-id", "9"]) == 1
    assert "NotFound" in capsys.readouterr().err
