#!/usr/bin/env python3
"""
GRU多股票涨跌预测训练脚本

1. 读取包含 Date, Symbol, Open, Close 的CSV
2. 构建滑动窗口样本并按时间顺序切分训练/测试集
3. 训练GRU多输出二分类模型
4. 输出每只股票的准确率图和预测正确性时间线
"""

import argparse
import sys
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from .config.config import Config, LabelLayout, load_config
from .errors import InsufficientDataError, SchemaError
from .pipeline import Pipeline
from .utils.helpers import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GRU多股票涨跌预测训练")
    parser.add_argument("csv", type=str, help="CSV文件路径 (Date, Symbol, Open, Close)")
    parser.add_argument("--config", type=str, default="", help="YAML配置文件路径")
    parser.add_argument("--window-size", type=int, default=None, help="窗口长度")
    parser.add_argument("--horizon", type=int, default=None, help="预测天数")
    parser.add_argument("--train-ratio", type=float, default=None, help="训练集比例")
    parser.add_argument("--label-layout", type=str, default=None,
                        choices=[layout.value for layout in LabelLayout], help="标签布局")
    parser.add_argument("--epochs", type=int, default=None, help="训练轮数")
    parser.add_argument("--batch-size", type=int, default=None, help="批次大小")
    parser.add_argument("--lr", type=float, default=None, help="学习率")
    parser.add_argument("--units", type=int, default=None, help="GRU单元数")
    parser.add_argument("--device", type=str, default=None, help="设备")
    parser.add_argument("--seed", type=int, default=None, help="随机种子")
    parser.add_argument("--output-dir", type=str, default=None, help="结果输出目录")
    parser.add_argument("--model-dir", type=str, default=None, help="模型存储目录")
    parser.add_argument("--model-name", type=str, default=None, help="模型存储名称")
    parser.add_argument("--load-model", action="store_true", help="优先加载已保存的模型")
    parser.add_argument("--no-save", action="store_true", help="不保存模型")
    parser.add_argument("--progress", action="store_true", help="显示batch进度条")
    return parser


def _overrides(values: dict) -> dict:
    return {k: v for k, v in values.items() if v is not None}


def build_config(args: argparse.Namespace) -> Config:
    config = load_config(args.config) if args.config else Config()
    return Config(
        data=replace(config.data, csv_path=args.csv, **_overrides({
            "window_size": args.window_size,
            "prediction_horizon": args.horizon,
            "train_ratio": args.train_ratio,
            "label_layout": args.label_layout,
        })),
        model=replace(config.model, **_overrides({"gru_units": args.units})),
        training=replace(config.training, **_overrides({
            "epochs": args.epochs,
            "batch_size": args.batch_size,
            "learning_rate": args.lr,
            "show_progress": True if args.progress else None,
        })),
        experiment=replace(config.experiment, **_overrides({
            "device": args.device,
            "seed": args.seed,
            "results_dir": args.output_dir,
            "model_dir": args.model_dir,
            "model_name": args.model_name,
        })),
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = build_config(args)
    setup_logging(config.experiment.log_dir)

    logger.info("开始GRU模型训练")
    logger.info(f"数据配置: {config.data}")
    logger.info(f"模型配置: {config.model}")
    logger.info(f"训练配置: {config.training}")
    logger.info(f"实验配置: {config.experiment}")

    pipeline = Pipeline(config)
    try:
        pipeline.load(config.data.csv_path)
        if args.load_model:
            pipeline.load_or_train()
        else:
            pipeline.train()
        report = pipeline.evaluate()
        pipeline.render(report)
        pipeline.write_results(report)
        if not args.no_save and pipeline.last_run is not None:
            pipeline.save_model()
    except SchemaError as e:
        logger.error(f"CSV格式错误: {e}")
        return 2
    except InsufficientDataError as e:
        logger.error(f"数据不足: {e}")
        return 3

    logger.info(f"训练完成！测试准确率 {report.accuracy:.2%}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
