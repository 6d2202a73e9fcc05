"""Layer-wise pretraining and network fine-tuning."""

from .finetune import CGTrainer, SGDTrainer
from .trainer import ContrastiveDivergence, PersistentContrastiveDivergence, cd_k, pcd_k

__all__ = [
    "ContrastiveDivergence",
    "PersistentContrastiveDivergence",
    "cd_k",
    "pcd_k",
    "SGDTrainer",
    "CGTrainer",
]
