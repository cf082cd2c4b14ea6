
import torch
from torch import nn
import torch.nn.functional as F

class BinaryFocalLoss(nn.Module):
    """Focal loss on independent sigmoid outputs."""
    def __init__(self, alpha=1.0, gamma=2.0, reduction='mean'):
        super().__init__()
        self.alpha = alpha
        self.gamma = gamma
        self.reduction = reduction
    def forward(self, logits, targets):
        bce = F.binary_cross_entropy_with_logits(logits, targets, reduction='none')
        pt = torch.exp(-bce)
        loss = self.alpha * (1 - pt) ** self.gamma * bce
        if self.reduction == 'mean':
            return loss.mean()
        if self.reduction == 'sum':
            return loss.sum()
        return loss

class LabelSmoothingBCE(nn.Module):
    def __init__(self, smoothing: float = 0.05):
        super().__init__()
        self.smoothing = smoothing
    def forward(self, logits, targets):
        smoothed = targets * (1 - self.smoothing) + 0.5 * self.smoothing
        return F.binary_cross_entropy_with_logits(logits, smoothed)

def build_criterion(cfg) -> nn.Module:
    loss_type = getattr(cfg, 'loss_type', 'bce')
    if loss_type == 'focal':
        return BinaryFocalLoss(gamma=getattr(cfg, 'focal_gamma', 2.0))
    if loss_type == 'label_smoothing':
        return LabelSmoothingBCE(smoothing=getattr(cfg, 'label_smoothing', 0.05))
    if loss_type == 'bce':
        return nn.BCEWithLogitsLoss()
    raise ValueError(f"不支持的损失函数: {loss_type}")
