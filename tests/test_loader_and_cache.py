"""
Test matrix loading from CSV and the robustness results cache.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.io.results_cache import load_robustness_cache, save_robustness_cache
from src.utils.errors import CacheMismatchError, InvalidInput
from src.webs.loader import load_webs_from_dir, read_matrix_csv, web_type_from_name


class TestLoader:
    """Tests for CSV matrix loading."""

    def test_read_with_labels_thresholds_counts(self, tmp_path):
        path = tmp_path / "matrix_PL_001.csv"
        path.write_text("trait,sp0,sp1,sp2\nt0,0,2,0\nt1,1.5,0,-3\n")

        m = read_matrix_csv(path)
        assert m.values.tolist() == [[0, 1, 0], [1, 0, 0]]
        assert (m.N, m.S) == (2, 3)

    def test_read_without_header_or_labels(self, tmp_path):
        path = tmp_path / "plain.csv"
        path.write_text("1,0,1\n0,0,4\n")

        m = read_matrix_csv(path, has_header=False, row_labels=False)
        assert m.values.tolist() == [[1, 0, 1], [0, 0, 1]]

    def test_non_numeric_cell(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("trait,sp0,sp1\nt0,1,abc\nt1,0,1\n")
        with pytest.raises(InvalidInput):
            read_matrix_csv(path)

    def test_web_type_from_name(self):
        assert web_type_from_name("matrix_PL_012") == "PL"
        assert web_type_from_name("matrix_sd_003") == "SD"
        assert web_type_from_name("matrix_ZZ_001") is None
        assert web_type_from_name("M_HP_001", type_slice=(2, 4)) == "HP"

    def test_load_directory(self, tmp_path):
        (tmp_path / "matrix_PL_002.csv").write_text("trait,a,b\nt0,1,0\nt1,1,1\n")
        (tmp_path / "matrix_SD_001.csv").write_text("trait,a,b\nt0,0,1\nt1,1,1\n")
        (tmp_path / "matrix_HP_003.csv").write_text("trait,a,b\nt0,1,?\n")

        webs, failures = load_webs_from_dir(tmp_path)

        assert list(webs) == ["matrix_PL_002", "matrix_SD_001"]
        assert webs["matrix_SD_001"].web_type == "SD"
        assert [i for i, _ in failures] == ["matrix_HP_003"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_webs_from_dir(tmp_path / "nope")


class TestResultsCache:
    """Tests for the parquet robustness cache."""

    def test_save_and_load(self, tmp_path):
        samples = {"a": np.array([0.1, 0.5, 1.0]), "b": np.array([0.25, 0.75])}
        path = save_robustness_cache(samples, tmp_path / "cache" / "samples.parquet")

        loaded = load_robustness_cache(path, ["b", "a"])

        assert list(loaded) == ["b", "a"]
        assert np.array_equal(loaded["a"], samples["a"])
        assert np.array_equal(loaded["b"], samples["b"])

    def test_subset_is_allowed(self, tmp_path):
        path = save_robustness_cache({"a": np.array([0.5]), "b": np.array([1.0])}, tmp_path / "s.parquet")
        assert list(load_robustness_cache(path, ["a"])) == ["a"]

    def test_missing_network(self, tmp_path):
        path = save_robustness_cache({"a": np.array([0.5])}, tmp_path / "s.parquet")
        with pytest.raises(CacheMismatchError):
            load_robustness_cache(path, ["a", "c"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(CacheMismatchError):
            load_robustness_cache(tmp_path / "absent.parquet", ["a"])

    def test_trial_count_must_match(self, tmp_path):
        path = save_robustness_cache(
            {"a": np.array([0.5, 1.0, 0.25]), "b": np.array([1.0, 0.5])}, tmp_path / "s.parquet"
        )

        assert len(load_robustness_cache(path, ["a"], n_trials=3)["a"]) == 3
        with pytest.raises(CacheMismatchError, match="b \\(2\\)"):
            load_robustness_cache(path, ["a", "b"], n_trials=3)
