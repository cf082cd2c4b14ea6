
import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from loguru import logger

from .config.config import Config, DataConfig, LabelLayout
from .data.csv_parser import Record, load_csv, parse_csv
from .data.normalizer import NormalizedMatrix, normalize
from .data.pivot import build_matrix
from .data.splitter import DatasetSplit, chronological_split
from .data.windowing import SampleSet, build_samples
from .errors import InsufficientDataError, ModelNotFoundError, ModelNotBuiltError
from .models.classifier import EvaluationResult, SequenceClassifier
from .storage.model_store import LocalModelStore, ModelStore
from .training.trainer import CancellationToken, ProgressCallback, TrainingRun
from .training.validation import SymbolAccuracy, accuracy_by_symbol, compute_metrics, correctness_timeline
from .utils.helpers import get_device, set_seed
from .visualization.charts import plot_correctness_timeline, plot_symbol_accuracy, plot_training_history


@dataclass(frozen=True)
class PreparedData:
    """Parsed, pivoted and normalized data. Windowing can be redone from here without re-parsing."""
    normalized: NormalizedMatrix
    n_records: int
    coverage: float

    @property
    def symbols(self):
        return self.normalized.symbols

    @property
    def dates(self):
        return self.normalized.dates


@dataclass(frozen=True)
class WindowedDataset:
    samples: SampleSet
    split: DatasetSplit
    data_config: DataConfig

    @property
    def train(self) -> SampleSet:
        return self.split.train

    @property
    def test(self) -> SampleSet:
        return self.split.test


@dataclass(frozen=True)
class EvaluationReport:
    loss: float
    accuracy: float
    f1_macro: float
    per_symbol: List[SymbolAccuracy]
    timelines: Dict[str, np.ndarray]
    probabilities: np.ndarray
    anchor_dates: tuple


def prepare_records(records: Sequence[Record]) -> PreparedData:
    matrix = build_matrix(records)
    coverage = matrix.coverage()
    normalized = normalize(matrix)
    # the raw matrix is not needed past this point
    del matrix
    return PreparedData(normalized=normalized, n_records=len(records), coverage=coverage)


def prepare_from_text(text: str) -> PreparedData:
    return prepare_records(parse_csv(text))


def prepare_from_csv(path: Union[str, Path]) -> PreparedData:
    return prepare_records(load_csv(path))


def build_dataset(prepared: PreparedData, data_cfg: DataConfig) -> WindowedDataset:
    """Window and split prepared data. Raises InsufficientDataError when no sample fits."""
    samples = build_samples(prepared.normalized, data_cfg.window_size,
                            data_cfg.prediction_horizon, data_cfg.label_layout)
    if len(samples) == 0:
        required = data_cfg.window_size + data_cfg.prediction_horizon + 1
        raise InsufficientDataError(
            f"Need at least {required} dates for window_size={data_cfg.window_size} "
            f"and horizon={data_cfg.prediction_horizon}, got {len(prepared.dates)}",
            required_dates=required,
            available_dates=len(prepared.dates),
        )
    split = chronological_split(samples, data_cfg.train_ratio)
    return WindowedDataset(samples=samples, split=split, data_config=data_cfg)


class Pipeline:
    """
    CSV -> prepared data -> windowed dataset -> classifier -> report.

    Prepared data and the windowed dataset survive a failed training run, so
    training can be retried with other parameters without re-parsing.
    """

    def __init__(self, config: Optional[Config] = None, store: Optional[ModelStore] = None):
        self.config = config or Config()
        set_seed(self.config.experiment.seed)
        self.device = get_device(self.config.experiment.device)
        self.store = store if store is not None else LocalModelStore(self.config.experiment.model_dir)
        self.prepared: Optional[PreparedData] = None
        self.dataset: Optional[WindowedDataset] = None
        self.classifier: Optional[SequenceClassifier] = None
        self.last_run: Optional[TrainingRun] = None

    # ── 数据 ────────────────────────────────────────────────────────────────
    def load(self, csv_path: Optional[Union[str, Path]] = None) -> WindowedDataset:
        path = csv_path or self.config.data.csv_path
        prepared = prepare_from_csv(path)
        data_cfg = replace(self.config.data, csv_path=str(path))
        return self._install(prepared, build_dataset(prepared, data_cfg))

    def load_text(self, text: str) -> WindowedDataset:
        prepared = prepare_from_text(text)
        return self._install(prepared, build_dataset(prepared, self.config.data))

    def rebuild(self, window_size: Optional[int] = None, horizon: Optional[int] = None,
                train_ratio: Optional[float] = None,
                label_layout: Optional[LabelLayout] = None) -> WindowedDataset:
        """Re-window the already prepared data with new parameters."""
        if self.prepared is None:
            raise RuntimeError("No data loaded; call load() first")
        data_cfg = self.config.data
        updates = {k: v for k, v in {
            "window_size": window_size,
            "prediction_horizon": horizon,
            "train_ratio": train_ratio,
            "label_layout": LabelLayout(label_layout) if label_layout is not None else None,
        }.items() if v is not None}
        if updates:
            data_cfg = replace(data_cfg, **updates)
        return self._install(self.prepared, build_dataset(self.prepared, data_cfg))

    def _install(self, prepared: PreparedData, dataset: WindowedDataset) -> WindowedDataset:
        """Swap in a fully built dataset. A model fitted to the previous windows no longer applies."""
        self.prepared, self.dataset = prepared, dataset
        self.config = replace(self.config, data=dataset.data_config)
        if self.classifier is not None:
            logger.info("数据已更新，丢弃旧模型")
        self.classifier, self.last_run = None, None
        return dataset

    def _require_dataset(self) -> WindowedDataset:
        if self.dataset is None:
            raise RuntimeError("No dataset; call load() first")
        return self.dataset

    # ── 训练 / 评估 ──────────────────────────────────────────────────────────
    def train(self, on_epoch_end: Optional[ProgressCallback] = None,
              cancel_token: Optional[CancellationToken] = None) -> TrainingRun:
        dataset = self._require_dataset()
        if len(dataset.train) == 0:
            raise InsufficientDataError(
                f"Training prefix is empty ({len(dataset.samples)} samples, "
                f"train_ratio={dataset.data_config.train_ratio})")

        classifier = SequenceClassifier(self.config.model, self.config.training, self.device)
        run = classifier.fit(dataset.train.features, dataset.train.labels,
                             on_epoch_end=on_epoch_end, cancel_token=cancel_token)
        self.classifier, self.last_run = classifier, run
        return run

    def evaluate(self) -> EvaluationReport:
        dataset = self._require_dataset()
        if self.classifier is None:
            raise ModelNotBuiltError("No trained or loaded model to evaluate")
        test = dataset.test
        layout = dataset.data_config.label_layout
        threshold = self.config.training.threshold

        result: EvaluationResult = self.classifier.evaluate(test.features, test.labels)
        probs = self.classifier.predict(test.features)
        metrics = compute_metrics(test.labels, probs, threshold)
        per_symbol = accuracy_by_symbol(test.labels, probs, test.symbols, test.horizon, layout, threshold)
        timelines = {
            symbol: correctness_timeline(test.labels, probs, i, test.n_symbols, test.horizon, layout, threshold)
            for i, symbol in enumerate(test.symbols)
        }

        logger.info(f"测试结果 - Loss: {result.loss:.4f}, Accuracy: {result.accuracy:.4f}, "
                    f"F1(macro): {metrics['f1_macro']:.4f}")
        for acc in per_symbol:
            logger.info(f"  {acc.symbol}: {acc.accuracy:.2%} ({acc.correct}/{acc.total})")
        return EvaluationReport(
            loss=result.loss,
            accuracy=result.accuracy,
            f1_macro=metrics["f1_macro"],
            per_symbol=per_symbol,
            timelines=timelines,
            probabilities=probs,
            anchor_dates=test.anchor_dates,
        )

    def render(self, report: EvaluationReport, out_dir: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
        out_dir = Path(out_dir or self.config.experiment.results_dir)
        order = [a.symbol for a in report.per_symbol]
        paths = {
            "accuracy": plot_symbol_accuracy(report.per_symbol, out_dir / "symbol_accuracy.png"),
            "timeline": plot_correctness_timeline(report.timelines, order, out_dir / "correctness_timeline.png",
                                                  horizon=self.config.data.prediction_horizon),
        }
        if self.last_run is not None and self.last_run.history:
            paths["history"] = plot_training_history(self.last_run.history, out_dir / "training_history.png")
        return paths

    def write_results(self, report: EvaluationReport, out_dir: Optional[Union[str, Path]] = None) -> Path:
        out_dir = Path(out_dir or self.config.experiment.results_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        results = {
            "test_loss": report.loss,
            "test_accuracy": report.accuracy,
            "test_f1_macro": report.f1_macro,
            "per_symbol": [vars(a) for a in report.per_symbol],
            "test_anchor_dates": list(report.anchor_dates),
            "epochs_completed": self.last_run.epochs_completed if self.last_run else None,
            "cancelled": self.last_run.cancelled if self.last_run else None,
            "label_layout": self.config.data.label_layout.value,
            "window_size": self.config.data.window_size,
            "horizon": self.config.data.prediction_horizon,
        }
        path = out_dir / "training_results.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(results, f, ensure_ascii=False, indent=2)
        logger.info(f"结果已保存: {path}")
        return path

    # ── 模型存储 ─────────────────────────────────────────────────────────────
    def _model_metadata(self) -> dict:
        dataset = self._require_dataset()
        return {
            "symbols": list(dataset.samples.symbols),
            "window_size": dataset.data_config.window_size,
            "horizon": dataset.data_config.prediction_horizon,
            "label_layout": dataset.data_config.label_layout.value,
        }

    def save_model(self, name: Optional[str] = None) -> str:
        if self.classifier is None:
            raise ModelNotBuiltError("No model to save")
        name = name or self.config.experiment.model_name
        self.classifier.save(self.store, name, self._model_metadata())
        return name

    def load_model(self, name: Optional[str] = None) -> SequenceClassifier:
        """Restore a stored model for the current dataset. Raises ModelNotFoundError if absent."""
        name = name or self.config.experiment.model_name
        classifier, metadata = SequenceClassifier.load(self.store, name, self.config.training, self.device)
        expected = self._model_metadata()
        mismatched = sorted(k for k in expected if metadata.get(k) != expected[k])
        if mismatched:
            raise ValueError(f"Stored model '{name}' does not match the loaded data: {mismatched}")
        self.classifier, self.last_run = classifier, None
        return classifier

    def load_or_train(self, name: Optional[str] = None,
                      on_epoch_end: Optional[ProgressCallback] = None,
                      cancel_token: Optional[CancellationToken] = None) -> Optional[TrainingRun]:
        """Use the stored model when there is a compatible one, otherwise train a new one."""
        try:
            self.load_model(name)
            logger.info("使用已保存的模型")
            return None
        except ModelNotFoundError:
            logger.info("没有已保存的模型，开始训练新模型")
        except ValueError as e:
            logger.warning(f"{e}; 重新训练")
        return self.train(on_epoch_end=on_epoch_end, cancel_token=cancel_token)

    def run(self, csv_path: Optional[Union[str, Path]] = None, save: bool = True) -> EvaluationReport:
        self.load(csv_path)
        self.train()
        report = self.evaluate()
        self.render(report)
        self.write_results(report)
        if save:
            self.save_model()
        return report
