"""
Tests for baseline derivation, the daily grid and the rolling references.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from kidneyoutcomes.episodes import (
    InsufficientObservationsError,
    KidneyOutcomesConfig,
    build_daily_grid,
    compute_baselines,
    compute_references,
)


def _refs_for(obs, baseline_creatinine=None, config=None):
    if baseline_creatinine is None:
        day0 = obs.loc[obs['days_since_baseline'] == 0, 'creatinine_umol']
        baseline_creatinine = day0.mean() if len(day0) else np.nan
    grid = build_daily_grid(obs, obs['baseline_date'].iloc[0], baseline_creatinine)
    return compute_references(grid, config).set_index('days_since_baseline')


class TestComputeBaselines:

    def test_mean_of_day0_rows(self, observations_factory):
        obs = pd.concat([
            observations_factory('p1', [0, 0, 5], [80, 100, 120]),
            observations_factory('p2', [0, 3], [70, 90]),
        ], ignore_index=True)
        baselines = compute_baselines(obs).set_index('patient_id')
        assert baselines.loc['p1', 'baseline_creatinine'] == pytest.approx(90.0)
        assert baselines.loc['p2', 'baseline_creatinine'] == pytest.approx(70.0)
        assert baselines.loc['p1', 'baseline_date'] == pd.Timestamp('2020-01-01')

    def test_missing_day0_gives_nan_and_warning(self, observations_factory, caplog):
        obs = observations_factory('p1', [3, 5], [80, 100])
        with caplog.at_level(logging.WARNING, logger='kidneyoutcomes'):
            baselines = compute_baselines(obs)
        assert np.isnan(baselines['baseline_creatinine'].iloc[0])
        assert 'no creatinine on the baseline date' in caplog.text


class TestBuildDailyGrid:

    def test_contiguous_days_and_day0_removed(self, observations_factory):
        obs = observations_factory('p1', [0, 2, 6], [80, 100, 110])
        grid = build_daily_grid(obs, obs['baseline_date'].iloc[0], 80.0)
        assert grid['days_since_baseline'].tolist() == [2, 3, 4, 5, 6]
        assert grid['observed'].tolist() == [True, False, False, False, True]
        assert np.isnan(grid['creatinine_umol'].iloc[1])
        assert (grid['baseline_creatinine'] == 80.0).all()
        assert (grid['baseline_date'] == pd.Timestamp('2020-01-01')).all()

    def test_pre_baseline_rows_extend_grid(self, observations_factory):
        obs = observations_factory('p1', [-2, 0, 1], [90, 80, 100])
        grid = build_daily_grid(obs, obs['baseline_date'].iloc[0], 80.0)
        assert grid['days_since_baseline'].tolist() == [-2, -1, 0, 1]
        # Day 0 is on the grid but never observed
        assert np.isnan(grid.loc[grid['days_since_baseline'] == 0, 'creatinine_umol']).all()

    def test_no_post_baseline_observation_raises(self, observations_factory):
        obs = observations_factory('p1', [-5, 0], [90, 80])
        with pytest.raises(InsufficientObservationsError):
            build_daily_grid(obs, obs['baseline_date'].iloc[0], 80.0)


class TestShortWindowReferences:

    def test_48h_before_takes_smaller_neighbour(self, observations_factory):
        obs = observations_factory('p1', [0, 20, 21, 22], [80, 10, 20, 50])
        refs = _refs_for(obs)
        assert refs.loc[22, 'min_48h_before'] == 10

    def test_48h_before_uses_existing_neighbour(self, observations_factory):
        obs = observations_factory('p1', [0, 15, 21, 22], [80, 40, 20, 50])
        refs = _refs_for(obs)
        assert refs.loc[22, 'min_48h_before'] == 20

    def test_48h_after_and_combined(self, observations_factory):
        obs = observations_factory('p1', [0, 20, 21, 22, 23], [80, 60, 70, 50, 40])
        refs = _refs_for(obs)
        assert refs.loc[21, 'min_48h_before'] == 60
        assert refs.loc[21, 'min_48h_after'] == 40
        assert refs.loc[21, 'min_48h_combined'] == 40
        assert np.isnan(refs.loc[20, 'min_48h_before'])
        assert refs.loc[20, 'min_48h_combined'] == 50

    def test_7d_windows_exclude_current_day(self, observations_factory):
        obs = observations_factory('p1', [0, 10, 14, 17, 18], [80, 100, 80, 120, 90])
        refs = _refs_for(obs)
        assert refs.loc[18, 'min_7d_before'] == 80
        assert refs.loc[17, 'min_7d_before'] == 80
        assert np.isnan(refs.loc[10, 'min_7d_before'])
        assert refs.loc[10, 'min_7d_after'] == 80
        assert refs.loc[10, 'min_7d_combined'] == 80

    def test_7d_window_boundary(self, observations_factory):
        # Day 10 lies 8 days before day 18, outside the window
        obs = observations_factory('p1', [0, 10, 18], [80, 50, 120])
        refs = _refs_for(obs)
        assert np.isnan(refs.loc[18, 'min_7d_before'])
        obs = observations_factory('p1', [0, 11, 18], [80, 50, 120])
        refs = _refs_for(obs)
        assert refs.loc[18, 'min_7d_before'] == 50

    def test_unobserved_day_has_no_references(self, observations_factory):
        obs = observations_factory('p1', [0, 20, 23], [80, 60, 70])
        refs = _refs_for(obs)
        assert refs.loc[21, ['min_48h_before', 'min_7d_before', 'min_48h_after',
                             'median_pre_365d']].isna().all()


class TestBaselineOverride:

    def test_first_week_uses_baseline(self, observations_factory):
        obs = observations_factory('p1', [0, 3, 20], [80, 130, 100])
        refs = _refs_for(obs)
        for col in ['min_48h_before', 'min_48h_after', 'min_48h_combined',
                    'min_7d_before', 'min_7d_after', 'min_7d_combined']:
            assert refs.loc[3, col] == 80, col
        assert np.isnan(refs.loc[3, 'median_pre_365d'])

    def test_day_eight_not_overridden(self, observations_factory):
        obs = observations_factory('p1', [0, 7, 8], [80, 100, 110])
        refs = _refs_for(obs)
        assert refs.loc[7, 'min_48h_before'] == 80
        assert refs.loc[8, 'min_48h_before'] == 100

    def test_missing_baseline_propagates(self, observations_factory):
        obs = observations_factory('p1', [2, 4], [80, 130])
        refs = _refs_for(obs, baseline_creatinine=np.nan)
        assert refs.loc[4, ['min_48h_before', 'min_7d_before']].isna().all()


class TestMedianReferences:

    def test_gap_gating_and_window(self, observations_factory):
        obs = observations_factory('p1', [0, 10, 15, 30], [80, 100, 100, 200])
        refs = _refs_for(obs)
        # Gap of 5 days to the previous result is too short
        assert np.isnan(refs.loc[15, 'median_pre_365d'])
        # Gap of 15 days: median of 100, 100, 200 (current day included)
        assert refs.loc[30, 'median_pre_365d'] == 100
        assert np.isnan(refs.loc[10, 'median_post_365d'])
        assert refs.loc[15, 'median_post_365d'] == 150

    def test_gap_above_max_is_excluded(self, observations_factory):
        obs = observations_factory('p1', [0, 10, 400], [80, 100, 200])
        refs = _refs_for(obs)
        assert np.isnan(refs.loc[400, 'median_pre_365d'])

    def test_custom_gap_bounds(self, observations_factory):
        obs = observations_factory('p1', [0, 10, 15], [80, 100, 300])
        config = KidneyOutcomesConfig(median_min_gap_days=2)
        refs = _refs_for(obs, config=config)
        assert refs.loc[15, 'median_pre_365d'] == 200
