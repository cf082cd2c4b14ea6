import torch
from torch import nn


class GRUNetwork(nn.Module):
    """
    两层GRU多输出二分类网络

    GRU(units, 全序列) -> GRU(units // 2, 最后一步) -> Linear(num_outputs)
    输出 logits, sigmoid 由调用方处理
    """

    def __init__(self, num_features: int, num_outputs: int, units: int = 64, dropout: float = 0.0):
        super().__init__()
        if units < 2:
            raise ValueError(f"units must be >= 2, got {units}")
        self.num_features = num_features
        self.num_outputs = num_outputs
        self.units = units

        self.gru1 = nn.GRU(input_size=num_features, hidden_size=units, batch_first=True)
        self.gru2 = nn.GRU(input_size=units, hidden_size=units // 2, batch_first=True)
        self.dropout = nn.Dropout(dropout)
        self.head = nn.Linear(units // 2, num_outputs)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: (batch_size, window_size, num_features)
        Returns:
            logits: (batch_size, num_outputs)
        """
        seq, _ = self.gru1(x)
        seq, _ = self.gru2(seq)
        last = self.dropout(seq[:, -1, :])
        return self.head(last)
