"""
Tests for Argos track ingestion.
"""
import pytest
import numpy as np
import pandas as pd
import geopandas as gpd

from mlhabitat.data import tracks
from mlhabitat.errors import TrackDataError

from conftest import CRS


def fix_frame(**overrides):
    data = {
        "timestamp": pd.to_datetime(
            ["2023-06-01 03:00", "2023-06-01 01:00", "2023-06-01 02:00", "2023-06-01 02:00"], utc=True
        ),
        "longitude": [15.0, 15.01, 15.02, 15.03],
        "latitude": [45.0, 45.01, 45.02, 45.03],
        "smaj": [500.0, 800.0, 300.0, 400.0],
        "smin": [100.0, 200.0, 50.0, 60.0],
        "eor": [10.0, 20.0, 30.0, 40.0],
    }
    data.update(overrides)
    return pd.DataFrame(data)


class TestCleanFixes:
    """Test clean_fixes() function."""

    def test_sorts_and_drops_duplicate_times(self):
        cleaned = tracks.clean_fixes(fix_frame())

        assert cleaned["timestamp"].is_monotonic_increasing
        assert cleaned["timestamp"].is_unique
        assert len(cleaned) == 3
        # First fix of the duplicated 02:00 timestamp is kept
        assert cleaned.loc[cleaned["timestamp"].dt.hour == 2, "smaj"].iloc[0] == 300.0

    def test_drops_zero_axis_ellipses(self):
        cleaned = tracks.clean_fixes(fix_frame(smin=[100.0, 0.0, 50.0, 60.0]))

        assert 800.0 not in cleaned["smaj"].values
        assert (cleaned["smin"] > 0).all()

    def test_drops_missing_values(self):
        cleaned = tracks.clean_fixes(fix_frame(eor=[10.0, np.nan, 30.0, 40.0]))
        assert len(cleaned) == 2

    def test_fresh_index(self):
        cleaned = tracks.clean_fixes(fix_frame())
        assert list(cleaned.index) == list(range(len(cleaned)))

    def test_missing_columns(self):
        with pytest.raises(TrackDataError, match="smaj"):
            tracks.clean_fixes(fix_frame().drop(columns=["smaj"]))

    def test_nothing_left(self):
        with pytest.raises(TrackDataError):
            tracks.clean_fixes(fix_frame(smaj=[0.0, 0.0, 0.0, 0.0]))

    def test_input_not_modified(self):
        df = fix_frame()
        before = df.copy()
        tracks.clean_fixes(df)
        pd.testing.assert_frame_equal(df, before)


class TestAsTimeIndex:
    """Test as_time_index() normalisation."""

    def test_strings_parsed_to_utc(self):
        index = tracks.as_time_index(["2023-06-01 00:00:00", "2023-06-01 03:00:00"])

        assert isinstance(index, pd.DatetimeIndex)
        assert str(index.tz) == "UTC"
        assert index[1] - index[0] == pd.Timedelta(hours=3)

    def test_string_dtype_series_parsed(self):
        series = pd.Series(["2023-06-01 00:00:00", "2023-06-01 01:00:00"], dtype="string")

        assert isinstance(tracks.as_time_index(series), pd.DatetimeIndex)

    def test_datetimes_unchanged(self):
        times = pd.date_range("2023-06-01", periods=3, freq="1h", tz="UTC")

        assert tracks.as_time_index(times).equals(times)

    def test_numeric_seconds_unchanged(self):
        index = tracks.as_time_index([0.0, 600.0, 1200.0])

        assert not isinstance(index, pd.DatetimeIndex)
        np.testing.assert_allclose(index, [0.0, 600.0, 1200.0])

    def test_strings_and_datetimes_compare_equal(self):
        times = pd.date_range("2023-06-01", periods=2, freq="1h", tz="UTC")
        text = times.strftime("%Y-%m-%d %H:%M:%S")

        assert tracks.as_time_index(text).equals(tracks.as_time_index(times))


class TestProjectFixes:
    """Test project_fixes() function."""

    def test_adds_projected_coordinates(self):
        projected = tracks.project_fixes(tracks.clean_fixes(fix_frame()), CRS)

        assert isinstance(projected, gpd.GeoDataFrame)
        assert projected.crs == CRS
        np.testing.assert_allclose(projected["x"], projected.geometry.x)
        # 15E is the central meridian of UTM 33N
        assert projected["x"].iloc[0] == pytest.approx(500000.0, abs=2000.0)


class TestLoadArgosTrack:
    """Test load_argos_track() function."""

    def test_load_movebank_export(self, track_csv, raw_track):
        loaded = tracks.load_argos_track(track_csv, CRS)

        assert len(loaded) == len(raw_track)
        assert {"timestamp", "x", "y", "smaj", "smin", "eor", "quality"} <= set(loaded.columns)
        assert loaded["timestamp"].dt.tz is not None
        assert loaded.crs == CRS

    def test_projected_positions_near_truth(self, track_csv):
        loaded = tracks.load_argos_track(track_csv, CRS)

        error = np.hypot(loaded["x"] - loaded["true_x"], loaded["y"] - loaded["true_y"])
        assert error.max() < 5 * loaded["smaj"].max()

    def test_selects_individual(self, tmp_path, raw_track):
        other = raw_track.copy()
        other["individual-local-identifier"] = "sim-02"
        other = other.iloc[:10]
        path = tmp_path / "two_animals.csv"
        pd.concat([raw_track, other]).to_csv(path, index=False)

        loaded = tracks.load_argos_track(path, CRS, individual="sim-02")

        assert len(loaded) == 10
        assert (loaded["individual"] == "sim-02").all()

    def test_defaults_to_first_individual(self, tmp_path, raw_track):
        other = raw_track.copy()
        other["individual-local-identifier"] = "sim-02"
        path = tmp_path / "two_animals.csv"
        pd.concat([raw_track, other]).to_csv(path, index=False)

        loaded = tracks.load_argos_track(path, CRS)

        assert (loaded["individual"] == "sim-01").all()

    def test_custom_column_map(self, tmp_path, raw_track):
        renamed = raw_track.rename(columns={
            "location-long": "lon", "location-lat": "lat",
            "argos:semi-major": "semi_major", "argos:semi-minor": "semi_minor",
            "argos:orientation": "orientation",
        })
        path = tmp_path / "custom.csv"
        renamed.to_csv(path, index=False)

        loaded = tracks.load_argos_track(path, CRS, column_map={
            "longitude": "lon", "latitude": "lat",
            "smaj": "semi_major", "smin": "semi_minor", "eor": "orientation",
        })

        assert len(loaded) == len(raw_track)

    def test_missing_file(self, tmp_path):
        with pytest.raises(TrackDataError):
            tracks.load_argos_track(tmp_path / "missing.csv", CRS)
