import copy
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import torch
from loguru import logger
from torch.optim import SGD, Adam, AdamW
from torch.optim.lr_scheduler import CosineAnnealingLR, ReduceLROnPlateau
from torch.utils.data import DataLoader
from tqdm.auto import tqdm

from ..config.config import TrainingConfig
from .losses import build_criterion
from .validation import binary_accuracy


class CancellationToken:
    """Thread-safe stop flag checked by the trainer between batches and epochs."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class EpochProgress:
    epoch: int            # 1-based
    epochs: int
    train_loss: float
    train_acc: float
    val_loss: Optional[float]
    val_acc: Optional[float]
    lr: float


@dataclass
class TrainingRun:
    history: Dict[str, List[float]] = field(default_factory=dict)
    epochs_completed: int = 0
    cancelled: bool = False
    stopped_early: bool = False
    best_val_acc: Optional[float] = None
    best_epoch: Optional[int] = None


ProgressCallback = Callable[[EpochProgress], None]


class GRUTrainer:
    def __init__(self, model: torch.nn.Module, device: torch.device, config: TrainingConfig):
        self.model = model.to(device)
        self.device = device
        self.cfg = config

        # 优化器选择
        self.opt = self._build_optimizer()

        # 学习率调度器
        self.sched = self._build_scheduler()

        # 损失函数选择
        self.criterion = build_criterion(self.cfg)

    def _build_optimizer(self):
        """构建优化器"""
        params = self.model.parameters()

        if self.cfg.optimizer == "adam":
            return Adam(params, lr=self.cfg.learning_rate, weight_decay=self.cfg.weight_decay)
        elif self.cfg.optimizer == "adamw":
            return AdamW(params, lr=self.cfg.learning_rate, weight_decay=self.cfg.weight_decay)
        elif self.cfg.optimizer == "sgd":
            return SGD(params, lr=self.cfg.learning_rate, momentum=0.9,
                       weight_decay=self.cfg.weight_decay, nesterov=True)
        raise ValueError(f"不支持的优化器: {self.cfg.optimizer}")

    def _build_scheduler(self):
        """构建学习率调度器"""
        if self.cfg.scheduler == "cosine":
            return CosineAnnealingLR(self.opt, T_max=max(1, self.cfg.epochs), eta_min=self.cfg.min_lr)
        elif self.cfg.scheduler == "reduce_on_plateau":
            return ReduceLROnPlateau(self.opt, mode='max', factor=0.5, patience=3, min_lr=self.cfg.min_lr)
        elif self.cfg.scheduler == "none":
            return None
        raise ValueError(f"不支持的学习率调度器: {self.cfg.scheduler}")

    def fit(self, train_loader: DataLoader, val_loader: Optional[DataLoader] = None,
            on_epoch_end: Optional[ProgressCallback] = None,
            cancel_token: Optional[CancellationToken] = None) -> TrainingRun:
        """
        训练循环

        on_epoch_end is called synchronously once per finished epoch, in epoch
        order. A cancelled token stops the loop after the current batch; the
        returned run then has cancelled=True and the history so far.
        """
        run = TrainingRun(history=defaultdict(list))
        patience = self.cfg.early_stopping_patience
        best_state = None
        stale = 0

        for epoch in range(self.cfg.epochs):
            if cancel_token is not None and cancel_token.cancelled:
                run.cancelled = True
                break
            epoch_start = time.time()

            train_loss, train_acc, interrupted = self._train_epoch(train_loader, epoch, cancel_token)
            if interrupted:
                run.cancelled = True
                break

            val_loss, val_acc = (None, None)
            if val_loader is not None and len(val_loader.dataset) > 0:
                val_loss, val_acc = self.evaluate_loader(val_loader)

            if self.sched is not None:
                if isinstance(self.sched, ReduceLROnPlateau):
                    self.sched.step(val_acc if val_acc is not None else train_acc)
                else:
                    self.sched.step()

            lr = self.opt.param_groups[0]['lr']
            run.history['train_loss'].append(train_loss)
            run.history['train_acc'].append(train_acc)
            run.history['lr'].append(lr)
            if val_loss is not None:
                run.history['val_loss'].append(val_loss)
                run.history['val_acc'].append(val_acc)
            run.epochs_completed = epoch + 1

            logger.info(
                f"Epoch {epoch+1}/{self.cfg.epochs} - "
                f"Train Loss: {train_loss:.4f} - Train Acc: {train_acc:.4f} - "
                + (f"Val Loss: {val_loss:.4f} - Val Acc: {val_acc:.4f} - " if val_loss is not None else "")
                + f"Time: {time.time() - epoch_start:.2f}s - LR: {lr:.2e}"
            )

            if on_epoch_end is not None:
                on_epoch_end(EpochProgress(
                    epoch=epoch + 1, epochs=self.cfg.epochs,
                    train_loss=train_loss, train_acc=train_acc,
                    val_loss=val_loss, val_acc=val_acc, lr=lr,
                ))

            if val_acc is not None and (run.best_val_acc is None or val_acc > run.best_val_acc):
                run.best_val_acc = val_acc
                run.best_epoch = epoch + 1
                stale = 0
                if patience is not None:
                    best_state = copy.deepcopy(self.model.state_dict())
            elif val_acc is not None:
                stale += 1
                if patience is not None and stale >= patience:
                    logger.info(f"早停触发，{patience}个epoch无改善 (epoch {epoch+1})")
                    run.stopped_early = True
                    break

        if best_state is not None:
            self.model.load_state_dict(best_state)
            logger.info(f"恢复最佳模型: epoch {run.best_epoch}, val_acc {run.best_val_acc:.4f}")
        if run.cancelled:
            logger.warning(f"训练已取消, 完成 {run.epochs_completed}/{self.cfg.epochs} 个epoch")

        run.history = dict(run.history)
        return run

    def _train_epoch(self, train_loader: DataLoader, epoch: int,
                     cancel_token: Optional[CancellationToken]) -> Tuple[float, float, bool]:
        """训练一个epoch"""
        self.model.train()
        total_loss, total_correct, total_count, num_batches = 0.0, 0, 0, 0

        batches = train_loader
        if self.cfg.show_progress:
            batches = tqdm(train_loader, desc=f"Epoch {epoch + 1}", leave=False)

        for xb, yb in batches:
            if cancel_token is not None and cancel_token.cancelled:
                return float("nan"), float("nan"), True
            xb, yb = xb.to(self.device), yb.to(self.device)

            out = self.model(xb)
            loss = self.criterion(out, yb)

            self.opt.zero_grad(set_to_none=True)
            loss.backward()
            if self.cfg.grad_clip > 0:
                torch.nn.utils.clip_grad_norm_(self.model.parameters(), self.cfg.grad_clip)
            self.opt.step()

            total_loss += loss.item()
            num_batches += 1
            preds = (torch.sigmoid(out) >= self.cfg.threshold).float()
            total_correct += int((preds == yb).sum().item())
            total_count += yb.numel()

        if num_batches == 0:
            return float("nan"), float("nan"), False
        return total_loss / num_batches, total_correct / total_count, False

    @torch.no_grad()
    def evaluate_loader(self, loader: DataLoader) -> Tuple[float, float]:
        """Mean loss over samples and binary accuracy at the configured threshold."""
        self.model.eval()
        total_loss, n = 0.0, 0
        probs, targets = [], []
        for xb, yb in loader:
            xb, yb = xb.to(self.device), yb.to(self.device)
            out = self.model(xb)
            total_loss += self.criterion(out, yb).item() * len(xb)
            n += len(xb)
            probs.append(torch.sigmoid(out).cpu().numpy())
            targets.append(yb.cpu().numpy())
        if n == 0:
            return float("nan"), float("nan")
        acc = binary_accuracy(np.concatenate(targets), np.concatenate(probs), self.cfg.threshold)
        return total_loss / n, acc
