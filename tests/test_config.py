"""Tests for configuration loading and validation."""

import pytest

from viralqc.config import Config, ConfigError, ExecutionConfig
from viralqc.qc.alerts import AlertCode


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoad:
    """Tests for Config.load."""

    def test_defaults(self):
        config = Config.load()
        assert config == Config()
        assert config.execution.n_workers == 1

    def test_toml(self, tmp_path):
        path = _write(
            tmp_path,
            "viralqc.toml",
            """
[detectors]
lowcov = 0.85
nmaxins = 30

[detectors.frames]
fst_min_nt_internal = 9

[policy]
fail = ["fstlocfi"]
pass = ["lowcovrg"]

[aggregator]
nmiscftr_thr = 2

[execution]
n_workers = 4
backend = "threads"
""",
        )
        config = Config.load(path)
        assert config.detectors.lowcov == 0.85
        assert config.detectors.nmaxins == 30
        assert config.detectors.frames.fst_min_nt_internal == 9
        assert config.policy.fail_codes == {AlertCode.FSTLOCFI}
        assert config.policy.pass_codes == {AlertCode.LOWCOVRG}
        assert config.aggregator.nmiscftr_thr == 2
        assert config.execution == ExecutionConfig(n_workers=4, backend="threads")

    def test_json(self, tmp_path):
        path = _write(tmp_path, "viralqc.json", '{"detectors": {"atg_only": true}}')
        assert Config.load(path).detectors.atg_only

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "missing.toml")

    def test_unsupported_format(self, tmp_path):
        path = _write(tmp_path, "viralqc.yaml", "detectors: {}\n")
        with pytest.raises(ConfigError, match="Unsupported configuration format"):
            Config.load(path)

    def test_unparsable(self, tmp_path):
        path = _write(tmp_path, "viralqc.toml", "[detectors\n")
        with pytest.raises(ConfigError, match="Cannot parse"):
            Config.load(path)


class TestValidation:
    """Tests for rejected configurations."""

    @pytest.mark.parametrize(
        "data,message",
        [
            ({"detector": {}}, "Unknown configuration keys: detector"),
            ({"detectors": {"lowcovv": 0.8}}, "detectors.lowcovv"),
            ({"detectors": {"frames": {"fst_low": 0.1}}}, "detectors.frames.fst_low"),
            ({"policy": {"passes": ["lowcovrg"]}}, "policy.passes"),
            ({"execution": "fast"}, "execution must be a table"),
        ],
    )
    def test_unknown_keys(self, data, message):
        with pytest.raises(ConfigError, match=message):
            Config.from_dict(data)

    def test_unknown_alert_code(self):
        with pytest.raises(ConfigError, match="Unknown alert code"):
            Config.from_dict({"policy": {"fail": ["bogus"]}})

    def test_forbidden_override(self, tmp_path):
        path = _write(tmp_path, "viralqc.toml", '[policy]\npass = ["noannotn"]\n')
        with pytest.raises(ConfigError, match="policy"):
            Config.load(path)

    def test_out_of_range_threshold(self):
        config = Config.from_dict({"detectors": {"lowcov": 1.5}})
        with pytest.raises(ConfigError, match="detectors"):
            config.validate()

    @pytest.mark.parametrize(
        "execution",
        [{"n_workers": 0}, {"backend": "cluster"}],
    )
    def test_bad_execution(self, execution):
        with pytest.raises(ConfigError, match="execution"):
            Config.from_dict({"execution": execution}).validate()


class TestSave:
    """Tests for Config.save."""

    def test_round_trip(self, tmp_path):
        config = Config.from_dict(
            {
                "detectors": {"nmaxdel": 12, "frames": {"fst_high_thr": 0.9}},
                "policy": {"fail": ["fstlocfi"], "ignore_misc_not_failure": True},
                "execution": {"n_workers": 2},
            }
        )
        path = tmp_path / "saved.json"
        config.save(path)
        assert Config.load(path) == config

    def test_to_dict_layout(self):
        data = Config().to_dict()
        assert set(data) == {"detectors", "policy", "aggregator", "execution"}
        assert data["policy"]["pass"] == []
        assert "frames" in data["detectors"]
