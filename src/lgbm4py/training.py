"""Training loop on top of `Booster.update_one_iter`."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from lgbm4py.booster import Booster
from lgbm4py.config import BufferSettings, ParamsInput
from lgbm4py.dataset import Dataset
from lgbm4py.library import NativeAPI

_log = logging.getLogger(__name__)

__all__: list[str] = [
    "CallbackEnv",
    "EarlyStopException",
    "EvalRecord",
    "log_evaluation",
    "train",
]


@dataclass(frozen=True, slots=True)
class EvalRecord:
    """One metric value for one dataset after one boosting round."""

    dataset_name: str
    metric_name: str
    value: float


@dataclass(frozen=True)
class CallbackEnv:
    """State handed to training callbacks after every round."""

    booster: Booster
    iteration: int
    end_iteration: int
    evaluation_result_list: list[EvalRecord]


class EarlyStopException(Exception):
    """Raised by a callback to end training after the current round."""

    def __init__(self, best_iteration: int) -> None:
        super().__init__(f"early stop at iteration {best_iteration}")
        self.best_iteration = best_iteration


Callback = Callable[[CallbackEnv], None]


def log_evaluation(period: int = 1) -> Callback:
    """Callback that logs every ``period``-th round's metrics at INFO level."""

    def _callback(env: CallbackEnv) -> None:
        if period <= 0 or not env.evaluation_result_list:
            return
        if (env.iteration + 1) % period == 0 or env.iteration + 1 == env.end_iteration:
            results = "\t".join(f"{r.dataset_name}'s {r.metric_name}: {r.value:g}" for r in env.evaluation_result_list)
            _log.info("[%d]\t%s", env.iteration + 1, results)

    return _callback


def _evaluate(booster: Booster, valid_names: Sequence[str]) -> list[EvalRecord]:
    if not valid_names:
        return []
    metric_names = booster.get_eval_names()
    records: list[EvalRecord] = []
    for data_idx, dataset_name in enumerate(valid_names, start=1):
        values = booster.get_eval(data_idx)
        records.extend(
            EvalRecord(dataset_name, metric, float(value)) for metric, value in zip(metric_names, values, strict=False)
        )
    return records


def train(
    params: ParamsInput,
    train_set: Dataset,
    num_boost_round: int = 100,
    valid_sets: Sequence[Dataset] = (),
    valid_names: Sequence[str] = (),
    callbacks: Sequence[Callback] = (),
    *,
    api: NativeAPI | None = None,
    settings: BufferSettings | None = None,
) -> Booster:
    """Train a booster for up to ``num_boost_round`` rounds.

    Training stops early when the native library reports that no further
    split is possible, or when a callback raises `EarlyStopException`.

    Args:
        params: Booster parameters.
        train_set: Training data.
        num_boost_round: Maximum number of boosting rounds.
        valid_sets: Validation datasets evaluated after every round.
        valid_names: Names for ``valid_sets``; defaults to ``valid_<i>``.
        callbacks: Called after every round with a `CallbackEnv`.

    Returns:
        The trained booster. The caller owns it and must close it.

    Raises:
        ValueError: If ``num_boost_round`` is negative or names do not match sets.
        NativeCallError: If any native call fails. The booster is released first.
    """
    if num_boost_round < 0:
        raise ValueError("num_boost_round must be non-negative")
    if valid_names and len(valid_names) != len(valid_sets):
        raise ValueError(f"got {len(valid_names)} valid_names for {len(valid_sets)} valid_sets")
    names = list(valid_names) or [f"valid_{i}" for i in range(len(valid_sets))]

    booster = Booster.create(train_set, params, api=api or train_set.api, settings=settings)
    try:
        for valid_set in valid_sets:
            booster.add_valid_data(valid_set)

        for iteration in range(num_boost_round):
            finished = booster.update_one_iter()
            if finished:
                _log.info("Stopped after %d rounds: no further splits possible", iteration)
                break
            env = CallbackEnv(
                booster=booster,
                iteration=iteration,
                end_iteration=num_boost_round,
                evaluation_result_list=_evaluate(booster, names),
            )
            try:
                for callback in callbacks:
                    callback(env)
            except EarlyStopException as e:
                _log.info("Early stopping, best iteration is %d", e.best_iteration + 1)
                break
    except BaseException:
        booster.close()
        raise
    return booster
