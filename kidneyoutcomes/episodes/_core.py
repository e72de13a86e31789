"""Per-patient pipeline and cohort-level output tables.

This module contains the main public function:
- calculate_kidney_outcomes: AKI episodes, first-year AKI counts and CKD
  progression summaries for a cohort of creatinine observations
"""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from ._utils import InsufficientObservationsError, KidneyOutcomesConfig, PatientOutcome
from ._grid import build_daily_grid, compute_baselines
from ._references import compute_references
from ._flags import evaluate_aki_flags
from ._segment import segment_aki, segment_threshold
from ._reconcile import reconcile_aki, year1_count
from ._progression import summarize_progression
from kidneyoutcomes.utils.logging_config import get_logger
from kidneyoutcomes.utils.validator import resolve_duplicate_dates

logger = get_logger('episodes.core')

OBSERVATION_COLUMNS = [
    'patient_id',
    'baseline_date',
    'lab_date',
    'days_since_baseline',
    'months_since_baseline',
    'creatinine_umol',
    'egfr',
]

AKI_ALL_COLUMNS = [
    'patient_id',
    'is_event',
    'start_offset_days',
    'stop_offset_days',
    'duration_days',
    'is_akd',
]


@dataclass
class KidneyOutcomes:
    """Result tables of a cohort run.

    Attributes
    ----------
    aki_year1 : pd.DataFrame
        [patient_id, akiyear1_sum], one row per processed patient.
    aki_all : pd.DataFrame
        One row per reconciled AKI episode; patients without AKI get one row
        with is_event = 0 and empty offsets.
    progression_summary : pd.DataFrame
        One row per processed patient.
    skipped : pd.DataFrame
        [patient_id, stage, reason] for patients excluded from every table
        (stage 'patient') or whose AKI stage was skipped (stage 'aki').
    ckd_episodes : pd.DataFrame
        Retained sustained eGFR episodes for every threshold.
    intermediates : dict
        Per-patient daily grids with references and flags (``dev=True`` only).
    """

    aki_year1: pd.DataFrame
    aki_all: pd.DataFrame
    progression_summary: pd.DataFrame
    skipped: pd.DataFrame
    ckd_episodes: pd.DataFrame
    intermediates: Dict[str, pd.DataFrame] = field(default_factory=dict)


def process_patient(
    patient_id: str,
    patient_obs: pd.DataFrame,
    baseline_date: pd.Timestamp,
    baseline_creatinine: float,
    config: KidneyOutcomesConfig,
    dev: bool = False,
) -> PatientOutcome:
    """
    Run every stage for one patient.

    CKD episodes and progression use all observations. The AKI stage needs at
    least one result after the baseline date; without one it is skipped and
    the patient simply has no AKI episodes.
    """
    patient_obs = patient_obs.sort_values('lab_date', kind='stable').reset_index(drop=True)

    ckd_episodes = []
    for t in config.egfr_thresholds:
        ckd_episodes.extend(segment_threshold(patient_obs, t, patient_id, config))

    aki_raw = []
    skipped_reason = None
    debug = {}
    try:
        grid = build_daily_grid(patient_obs, baseline_date, baseline_creatinine)
    except InsufficientObservationsError as e:
        skipped_reason = str(e)
        logger.warning(f"Patient {patient_id}: AKI detection skipped ({e})")
    else:
        refs = compute_references(grid, config)
        refs['aki_flag'] = evaluate_aki_flags(refs, config)
        aki_raw = segment_aki(refs, patient_id, config)
        if dev:
            debug['grid'] = refs

    aki_episodes = reconcile_aki(aki_raw, ckd_episodes)
    progression = summarize_progression(patient_obs, ckd_episodes, aki_episodes, patient_id, config)

    logger.debug(
        f"Patient {patient_id}: {len(aki_raw)} raw AKI, {len(aki_episodes)} reconciled, "
        f"{len(ckd_episodes)} CKD episodes"
    )
    return PatientOutcome(
        patient_id=patient_id,
        aki_episodes=tuple(aki_episodes),
        ckd_episodes=tuple(ckd_episodes),
        progression=progression,
        aki_year1_count=year1_count(aki_episodes, config),
        aki_skipped_reason=skipped_reason,
        debug=debug,
    )


def _process_patient_task(args: tuple) -> PatientOutcome:
    return process_patient(*args)


def _run_sequential(tasks: List[tuple], show_progress: bool) -> tuple[List[PatientOutcome], List[dict]]:
    outcomes, failures = [], []
    iterator = tqdm(tasks, desc='Detecting kidney episodes', unit='patient') if show_progress else tasks
    for task in iterator:
        try:
            outcomes.append(_process_patient_task(task))
        except Exception as e:
            logger.warning(f"Patient {task[0]} excluded: {e}")
            failures.append({'patient_id': task[0], 'stage': 'patient', 'reason': str(e)})
    return outcomes, failures


def _run_parallel(tasks: List[tuple], n_jobs: int, show_progress: bool) -> tuple[List[PatientOutcome], List[dict]]:
    outcomes, failures = [], []
    with ProcessPoolExecutor(max_workers=n_jobs) as executor:
        futures = {executor.submit(_process_patient_task, task): task[0] for task in tasks}
        with tqdm(total=len(futures), desc='Detecting kidney episodes', unit='patient',
                  disable=not show_progress) as pbar:
            for future in as_completed(futures):
                patient_id = futures[future]
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    logger.warning(f"Patient {patient_id} excluded: {e}")
                    failures.append({'patient_id': patient_id, 'stage': 'patient', 'reason': str(e)})
                pbar.update(1)
    return outcomes, failures


def _aki_all_table(outcomes: List[PatientOutcome], config: KidneyOutcomesConfig) -> pd.DataFrame:
    rows = []
    for outcome in outcomes:
        if not outcome.aki_episodes:
            rows.append({
                'patient_id': outcome.patient_id,
                'is_event': 0,
                'start_offset_days': None,
                'stop_offset_days': None,
                'duration_days': None,
                'is_akd': 0,
            })
            continue
        for ep in outcome.aki_episodes:
            rows.append({
                'patient_id': outcome.patient_id,
                'is_event': 1,
                'start_offset_days': ep.start_offset_days,
                'stop_offset_days': ep.stop_offset_days,
                'duration_days': ep.duration_days,
                'is_akd': int(ep.is_akd(config.akd_min_duration_days)),
            })
    df = pd.DataFrame(rows, columns=AKI_ALL_COLUMNS)
    for col in ('start_offset_days', 'stop_offset_days', 'duration_days'):
        df[col] = df[col].astype('Int64')
    for col in ('is_event', 'is_akd'):
        df[col] = df[col].astype(int)
    return df


def _ckd_table(outcomes: List[PatientOutcome]) -> pd.DataFrame:
    columns = ['patient_id', 'threshold', 'start_date', 'stop_date',
               'start_offset_days', 'stop_offset_days', 'duration_days']
    rows = [
        ep.model_dump(include=set(columns))
        for outcome in outcomes
        for ep in outcome.ckd_episodes
    ]
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df['start_date'] = pd.to_datetime(df['start_date'])
        df['stop_date'] = pd.to_datetime(df['stop_date'])
    return df


def _progression_table(outcomes: List[PatientOutcome], config: KidneyOutcomesConfig) -> pd.DataFrame:
    rows = [outcome.progression.to_row() for outcome in outcomes]
    columns = ['patient_id', 'max_follow_up_days', 'akinhs_total_count',
               'akinhslonger7days_count', 'last6months', 'last12months']
    for t in sorted(config.egfr_thresholds):
        columns += [f'followupunder{t}', f'sustained90day_{t}', f'ckd{t}_progression',
                    f'persontimedays_{t}', f'persontimedays_{t}_notadjusted']
    df = pd.DataFrame(rows, columns=columns)
    for col in ('last6months', 'last12months'):
        df[col] = df[col].astype(float)
    return df


def calculate_kidney_outcomes(
    observations: pd.DataFrame,
    config: Optional[KidneyOutcomesConfig] = None,
    *,
    patient_ids: Optional[Iterable[str]] = None,
    n_jobs: int = 1,
    show_progress: bool = False,
    dev: bool = False,
) -> KidneyOutcomes:
    """
    Detect AKI and sustained CKD episodes for a cohort.

    Parameters
    ----------
    observations : pd.DataFrame
        Output of ``prepare_observations``: one row per creatinine result
        with columns patient_id, baseline_date, lab_date, days_since_baseline,
        months_since_baseline, creatinine_umol, egfr. Repeated dates are
        allowed and resolved with ``config.duplicate_policy`` after the
        baseline is computed.
    config : KidneyOutcomesConfig, optional
        Clinical constants. Defaults to ``KidneyOutcomesConfig()``.
    patient_ids : iterable of str, optional
        Every patient in the original extract. Patients listed here without
        any observation are reported in ``skipped``.
    n_jobs : int, default 1
        Worker processes. 1 runs in the current process.
    show_progress : bool, default False
        Show a tqdm progress bar.
    dev : bool, default False
        Keep each patient's daily grid with references and flags in
        ``intermediates``.

    Returns
    -------
    KidneyOutcomes

    Raises
    ------
    ValueError
        If required columns are missing or duplicate dates are found with
        ``duplicate_policy='error'``.
    """
    config = config or KidneyOutcomesConfig()

    missing_cols = [c for c in OBSERVATION_COLUMNS if c not in observations.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    obs = observations.copy()
    obs['patient_id'] = obs['patient_id'].astype(str)
    n_patients = obs['patient_id'].nunique()
    logger.info(f"Calculating kidney outcomes for {n_patients} patients ({len(obs)} observations)")

    baselines = compute_baselines(obs).set_index('patient_id')
    obs = resolve_duplicate_dates(obs, config.duplicate_policy)

    tasks = []
    for patient_id, patient_obs in obs.groupby('patient_id', sort=True):
        baseline = baselines.loc[patient_id]
        tasks.append((
            patient_id,
            patient_obs,
            baseline['baseline_date'],
            baseline['baseline_creatinine'],
            config,
            dev,
        ))

    if n_jobs is not None and n_jobs > 1 and len(tasks) > 1:
        logger.info(f"Processing patients with {n_jobs} workers")
        outcomes, failures = _run_parallel(tasks, n_jobs, show_progress)
    else:
        outcomes, failures = _run_sequential(tasks, show_progress)
    outcomes.sort(key=lambda o: o.patient_id)

    if patient_ids is not None:
        seen = set(obs['patient_id'])
        for pid in sorted({str(p) for p in patient_ids} - seen):
            logger.warning(f"Patient {pid} excluded: no usable observations")
            failures.append({'patient_id': pid, 'stage': 'patient', 'reason': 'no usable observations'})

    skipped_rows = failures + [
        {'patient_id': o.patient_id, 'stage': 'aki', 'reason': o.aki_skipped_reason}
        for o in outcomes if o.aki_skipped_reason is not None
    ]
    skipped = pd.DataFrame(skipped_rows, columns=['patient_id', 'stage', 'reason'])

    aki_year1 = pd.DataFrame(
        {
            'patient_id': [o.patient_id for o in outcomes],
            'akiyear1_sum': np.array([o.aki_year1_count for o in outcomes], dtype=int),
        }
    )

    result = KidneyOutcomes(
        aki_year1=aki_year1,
        aki_all=_aki_all_table(outcomes, config),
        progression_summary=_progression_table(outcomes, config),
        skipped=skipped,
        ckd_episodes=_ckd_table(outcomes),
        intermediates={o.patient_id: o.debug['grid'] for o in outcomes if 'grid' in o.debug},
    )

    n_aki = int(result.aki_all['is_event'].sum())
    logger.info(
        f"Done: {len(outcomes)} patients processed, {n_aki} AKI episodes, "
        f"{len(result.ckd_episodes)} sustained CKD episodes, "
        f"{int((skipped['stage'] == 'patient').sum())} patients excluded"
    )
    return result
