import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from cli.main import main


def test_cli_basic_preset(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    main(["--preset", "synthetic-sgd"])
    run_dir = Path("runs/synthetic-sgd")
    assert (run_dir / "metrics.jsonl").exists()
    assert (run_dir / "metrics.csv").exists()
    assert (run_dir / "model.npz").exists()

    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["model"] == str(run_dir / "model.npz")
    assert {"mae", "rmse", "r2", "objective"} <= set(payload["test_metrics"])


def test_cli_list_presets(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--list-presets"])
    assert excinfo.value.code == 0
    assert "synthetic-adam" in capsys.readouterr().out.split()


def test_cli_config_override_and_predict(tmp_path):
    override = tmp_path / "override.json"
    override.write_text(
        json.dumps(
            {
                "data": {"options": {"n_points": 48}},
                "optimizer": {"max_iterations": 38 * 20},
            }
        )
    )
    dumped = tmp_path / "resolved.json"
    run_dir = tmp_path / "run"
    main(
        [
            "--config",
            str(override),
            "--run-dir",
            str(run_dir),
            "--seed",
            "3",
            "--dump-config",
            str(dumped),
        ]
    )
    resolved = json.loads(dumped.read_text())
    assert resolved["data"]["options"] == {"freq": 1, "n_points": 48, "seed": 3}
    assert resolved["optimizer"]["name"] == "sgd"
    assert resolved["train"]["seed"] == 3

    samples = tmp_path / "samples.csv"
    samples.write_text("x\n-0.5\n0.0\n0.5\n")
    output = tmp_path / "predictions.csv"
    main(["--predict", str(run_dir / "model.npz"), "--input", str(samples), "--output", str(output)])
    predictions = pd.read_csv(output)
    assert list(predictions.columns) == ["output_0"]
    assert len(predictions) == 3


def test_cli_trains_on_csv(tmp_path):
    path = tmp_path / "train.csv"
    rows = ["a,b,target"] + [f"{i / 10},{1 - i / 10},{2 * i / 10}" for i in range(20)]
    path.write_text("\n".join(rows) + "\n")
    run_dir = tmp_path / "csv-run"
    main(["--csv-path", str(path), "--run-dir", str(run_dir)])
    assert (run_dir / "metrics_test.json").exists()


def test_cli_predict_requires_input(tmp_path):
    with pytest.raises(SystemExit):
        main(["--predict", str(tmp_path / "missing.npz")])


def test_cli_predictions_do_not_depend_on_row_order(tmp_path):
    rows = ["x,colour,target"]
    for i in range(40):
        colour = "red" if i % 2 else "blue"
        rows.append(f"{i / 40},{colour},{(5 if colour == 'red' else -5) + i / 40}")
    train = tmp_path / "train.csv"
    train.write_text("\n".join(rows) + "\n")
    run_dir = tmp_path / "run"
    main(["--csv-path", str(train), "--run-dir", str(run_dir)])
    model = str(run_dir / "model.npz")

    def predict(name, text):
        path = tmp_path / f"{name}.csv"
        path.write_text(text)
        output = tmp_path / f"{name}-out.csv"
        main(["--predict", model, "--input", str(path), "--output", str(output)])
        return pd.read_csv(output)["output_0"].to_numpy()

    red_first = predict("a", "x,colour\n0.25,red\n0.25,blue\n")
    blue_first = predict("b", "x,colour\n0.25,blue\n0.25,red\n")
    with_target = predict("c", "x,colour,target\n0.25,blue,0\n0.25,red,0\n")

    assert np.isclose(red_first[0], blue_first[1])
    assert np.isclose(red_first[1], blue_first[0])
    np.testing.assert_allclose(with_target, blue_first)


def test_cli_predict_rejects_mismatched_columns(tmp_path):
    train = tmp_path / "train.csv"
    train.write_text("a,b,target\n" + "".join(f"{i},{i % 3},{i}\n" for i in range(20)))
    run_dir = tmp_path / "run"
    main(["--csv-path", str(train), "--run-dir", str(run_dir)])
    samples = tmp_path / "samples.csv"
    samples.write_text("b,a\n1,2\n")
    with pytest.raises(SystemExit):
        main(["--predict", str(run_dir / "model.npz"), "--input", str(samples)])
