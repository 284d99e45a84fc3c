"""
Command-line interface implementation.
"""

import argparse
import logging
import sys
from typing import List, Optional

from ..analysis import StrategyStatistics, calculate_statistics, cycle_summary
from ..config import ConfigurationManager, RangeProfitConfig, StrategyConfig
from ..config.models import AppConfig
from ..errors import ConfigurationError, InvariantViolation
from ..liquidation import build_liquidation_steps
from ..models import StrategyState
from ..persistence import JsonStrategyStore


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def collect_states(app_config: AppConfig, store: JsonStrategyStore) -> List[StrategyState]:
    """
    Merge persisted strategies with those defined in the config file.

    Persisted state wins; strategies only present in the config file are
    shown as newly created.
    """
    states = {state.strategy_id: state for state in store.load_all()}
    for config in app_config.strategies:
        if config.id not in states:
            states[config.id] = StrategyState(config=config)
    return list(states.values())


def find_state(states: List[StrategyState], strategy_id: str) -> Optional[StrategyState]:
    """Find a strategy by id, falling back to a unique id prefix."""
    for state in states:
        if state.strategy_id == strategy_id:
            return state
    matches = [state for state in states if state.strategy_id.startswith(strategy_id)]
    return matches[0] if len(matches) == 1 else None


def _fmt_price(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.8f}"


def format_strategy_list(states: List[StrategyState]) -> str:
    """Format a table of strategies."""
    if not states:
        return "No strategies configured."

    lines = []
    lines.append(f"{'ID':<24} {'NAME':<28} {'STATUS':<8} {'CYCLE':>5} {'HELD':>14} {'AVG PRICE':>14} {'P&L':>12}")
    lines.append("-" * 111)
    for state in states:
        position = state.position
        pnl = state.total_realized_pnl + position.realized_pnl
        lines.append(
            f"{state.strategy_id:<24} {state.config.display_name[:28]:<28} {state.status.value:<8} "
            f"{position.cycle:>5} {position.total_target_held:>14.6f} "
            f"{_fmt_price(position.average_cost_basis):>14} {pnl:>+12.6f}"
        )
    return "\n".join(lines)


def format_strategy_plan(config: StrategyConfig) -> str:
    """Format the dip levels and exit plan of a strategy."""
    lines = []
    lines.append(f"📋 {config.display_name} ({config.id})")
    lines.append(f"   Pair: {config.base_token} -> {config.target_symbol or config.target_token}")
    lines.append(
        f"   DIP trigger: {config.dip_threshold_pct:g}% below the {config.dip_timeframe_label} high, "
        f"polling every {config.poll_interval_ms / 1000:g}s"
    )
    lines.append("")
    lines.append("📉 DIP buying levels:")
    for level in config.levels:
        description = f" - {level.description}" if level.description else ""
        lines.append(f"   Level {level.level}: {level.threshold_pct:.1f}% dip -> {level.buy_amount_base:g} base{description}")

    lines.append("")
    profit = config.profit
    if isinstance(profit, RangeProfitConfig):
        lines.append(
            f"📈 Profit range: {profit.min_pct:g}% - {profit.max_pct:g}% "
            f"({profit.steps} steps, {profit.distribution})"
        )
        for step in build_liquidation_steps(profit):
            lines.append(
                f"   Step {step.step}: {step.threshold_profit_pct:.2f}% profit -> "
                f"sell {step.fraction_of_position * 100:.1f}%"
            )
    else:
        lines.append(f"📈 Profit target: {profit.target_pct:g}% (sell everything)")

    if config.stop_loss_pct is None:
        lines.append("🛡️  Stop-loss: disabled")
    elif config.stop_loss_pct < 0:
        lines.append(f"🛡️  Stop-loss: sell everything at {config.stop_loss_pct:g}%")
    else:
        lines.append(f"🛡️  Profit lock: sell everything when profit falls back to {config.stop_loss_pct:g}%")

    cycles = "unlimited" if config.max_cycles == 0 else str(config.max_cycles)
    lines.append(f"🔄 Trading cycles: {cycles}")
    return "\n".join(lines)


def format_strategy_status(state: StrategyState) -> str:
    """Format the current position and history of a strategy."""
    position = state.position
    lines = []
    lines.append(f"📊 {state.config.display_name} ({state.strategy_id}) - {state.status.value.upper()}")
    if state.last_error:
        lines.append(f"   Last error: {state.last_error}")
    lines.append(f"   Cycle: {position.cycle} (completed {state.completed_cycles})")
    lines.append(f"   Invested: {position.total_base_invested:.6f} base")
    lines.append(f"   Held: {position.total_target_held:.6f} target")
    lines.append(f"   Average price: {_fmt_price(position.average_cost_basis)}")
    lines.append(f"   Executed levels: {', '.join(map(str, position.executed_levels)) or 'none'}")
    if position.liquidation_steps:
        steps = ", ".join(
            f"{step.step}{'✓' if step.executed else ''}@{step.threshold_profit_pct:g}%"
            for step in position.liquidation_steps
        )
        lines.append(f"   Liquidation steps: {steps}")
    lines.append(f"   Realized P&L: {state.total_realized_pnl + position.realized_pnl:+.6f} base")
    lines.append(f"   Trades: {state.successful_trades} filled, {state.failed_trades} failed")

    summary = cycle_summary(state)
    if not summary.empty:
        lines.append("")
        lines.append(summary.to_string(index=False))
    return "\n".join(lines)


def format_statistics(stats: StrategyStatistics) -> str:
    """Format aggregate statistics."""
    lines = []
    lines.append("📈 Strategy statistics")
    lines.append(
        f"   Strategies: {stats.total_strategies} "
        f"({stats.active_strategies} active, {stats.stopped_strategies} stopped, {stats.error_strategies} error)"
    )
    lines.append(
        f"   Trades: {stats.total_trades} ({stats.successful_trades} filled, {stats.failed_trades} failed, "
        f"{stats.success_rate:.1f}% success)"
    )
    lines.append(f"   Total profit: {stats.total_profit:+.6f} base ({stats.average_profit_per_trade:+.6f} per trade)")
    lines.append(
        f"   Cycles completed: {stats.total_cycles_completed} "
        f"({stats.average_cycles_per_strategy:.2f} per strategy)"
    )
    if stats.best_strategy_id:
        lines.append(
            f"   Best: {stats.best_strategy_name} ({stats.best_strategy_id}) {stats.best_strategy_profit:+.6f}"
        )
    return "\n".join(lines)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Dip Accumulator - buy confirmed dips, sell into profit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file"
    )

    parser.add_argument(
        "--state-dir",
        type=str,
        help="Directory holding strategy state files (overrides the config file)"
    )

    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate configuration file and exit"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List strategies with their position summary"
    )

    parser.add_argument(
        "--status",
        type=str,
        metavar="ID",
        help="Show position and trade history of a strategy"
    )

    parser.add_argument(
        "--plan",
        type=str,
        metavar="ID",
        help="Show the DIP levels and exit plan of a strategy"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show aggregate statistics across strategies"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set logging level"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    config_manager = ConfigurationManager()

    try:
        if args.validate_config:
            if not args.config:
                logger.error("--validate-config requires --config")
                sys.exit(1)
            app_config = config_manager.load_config(args.config, strict=True)
            print(f"✅ Configuration valid: {len(app_config.strategies)} strategies")
            for config in app_config.strategies:
                print(f"   {config.id}: {config.display_name} ({len(config.levels)} levels, {config.profit.mode} exit)")
            return

        app_config = config_manager.load_config(args.config) if args.config else AppConfig()
        store = JsonStrategyStore(args.state_dir or app_config.settings.state_dir)
        states = collect_states(app_config, store)

        if args.status or args.plan:
            strategy_id = args.status or args.plan
            state = find_state(states, strategy_id)
            if state is None:
                logger.error(f"Strategy {strategy_id} not found")
                sys.exit(1)
            if args.plan:
                print(format_strategy_plan(state.config))
            if args.status:
                print(format_strategy_status(state))
        elif args.stats:
            print(format_statistics(calculate_statistics(states)))
        else:
            print(format_strategy_list(states))

    except ConfigurationError as e:
        print(f"❌ {e}")
        sys.exit(1)
    except InvariantViolation as e:
        logger.error(f"Invalid strategy: {e}")
        sys.exit(1)
