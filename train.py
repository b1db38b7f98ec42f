"""Training script for single and coupled complex matrix units."""

import argparse

from config import CouplingConfig, TrainConfig, UnitConfig
from coupling import CouplingController
from series import render_unit
from training_loop import LoopState, TrainingLoop
from utils import TensorBoardLogger, format_complex, set_seed, timed


def report(loop: TrainingLoop) -> None:
    """Print the outcome of one unit."""
    unit = loop.unit
    print(f"\nUnit {unit.name} Summary:")
    print(f"  State: {loop.state.value} after {unit.iteration} iterations")
    if loop.state is LoopState.DIVERGED:
        d = loop.divergence
        print(f"  Diverged on {d.label} at iteration {d.iteration}: {d.value}")
    last = unit.recorder["cost"].last()
    if last is not None:
        print(f"  Final |cost|: {last[1]:.6f}")
    for label, det in loop.probe_determinants().items():
        print(f"  {label}: {format_complex(det)}")


def finish(loops: list[TrainingLoop], train_config: TrainConfig) -> None:
    for loop in loops:
        report(loop)
        if train_config.render_plots:
            paths = render_unit(
                loop.unit.recorder,
                loop.unit.name,
                out_dir=train_config.plot_dir,
                det_labels=loop.unit.probe_labels,
            )
            print(f"  Plots: {', '.join(str(p) for p in paths)}")


def train_single(
    unit_config: UnitConfig, train_config: TrainConfig, run_name: str
) -> TrainingLoop:
    """Train one unit to completion or divergence."""
    print(f"Config: {unit_config.experiment_summary()}")
    logger = TensorBoardLogger(train_config.log_dir, run_name) if train_config.use_tensorboard else None

    loop = TrainingLoop.from_config(0, unit_config, logger=logger)
    with timed("Trained"):
        loop.run()

    finish([loop], train_config)
    if logger is not None:
        logger.close()
    return loop


def train_coupled(
    coupling_config: CouplingConfig, train_config: TrainConfig, run_name: str
) -> CouplingController:
    """Train two units in lockstep with threshold fusion of one variable."""
    print(f"Config: {coupling_config.experiment_summary()}")
    logger = TensorBoardLogger(train_config.log_dir, run_name) if train_config.use_tensorboard else None

    controller = CouplingController.from_config(coupling_config, logger=logger)
    with timed("Trained"):
        controller.run()
    print(f"Ticks: {controller.tick_count}")
    print(f"Fires: unit 0 = {controller.fire_counts[0]}, unit 1 = {controller.fire_counts[1]}")

    finish(list(controller.loops), train_config)
    if logger is not None:
        logger.close()
    return controller


def main():
    """Main training entry point."""
    parser = argparse.ArgumentParser(
        description="Train complex matrices toward the cubic consistency fixed point"
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=["single", "dual"],
        default="dual",
        help="Train one unit, or two coupled units with threshold fusion",
    )
    parser.add_argument("--size", type=int, default=3, help="Matrix dimension")
    parser.add_argument("--iterations", type=int, default=1024, help="Iteration budget")
    parser.add_argument("--lr_real", type=float, default=0.3, help="Real part of the learning rate")
    parser.add_argument("--lr_imag", type=float, default=0.3, help="Imaginary part of the learning rate")
    parser.add_argument("--max_norm", type=float, default=1.0, help="Gradient-norm clip threshold")
    parser.add_argument("--seed", type=int, default=1, help="Seed of unit 0")
    parser.add_argument("--seed1", type=int, default=2, help="Seed of unit 1 (dual mode)")
    parser.add_argument(
        "--threshold",
        type=float,
        default=128.0,
        help="Cost magnitude that triggers fusion (dual mode)",
    )
    parser.add_argument(
        "--probe_targets",
        type=str,
        choices=["observed", "distinct"],
        default="observed",
        help="'observed' probes b twice (det_b, det_c); 'distinct' probes a, b, c",
    )
    parser.add_argument(
        "--gradient_convention",
        type=str,
        choices=["conjugate", "holomorphic"],
        default="holomorphic",
        help="Gradient handed to the optimizer",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Advance the two units on separate threads within a tick",
    )
    parser.add_argument("--plot_dir", type=str, default=".", help="Directory for PNG plots")
    parser.add_argument("--no_plots", action="store_true", help="Skip rendering plots")
    parser.add_argument("--log_dir", type=str, default="runs", help="TensorBoard log directory")
    parser.add_argument("--no_tensorboard", action="store_true", help="Disable TensorBoard logging")
    parser.add_argument(
        "--run_name",
        type=str,
        default=None,
        help="Run name for TensorBoard logging (default: mode name)",
    )

    args = parser.parse_args()

    set_seed(args.seed)

    unit_config = UnitConfig(
        size=args.size,
        learning_rate=complex(args.lr_real, args.lr_imag),
        iterations=args.iterations,
        max_norm=args.max_norm,
        seed=args.seed,
        probe_targets=args.probe_targets,
        gradient_convention=args.gradient_convention,
    )
    train_config = TrainConfig(
        plot_dir=args.plot_dir,
        render_plots=not args.no_plots,
        log_dir=args.log_dir,
        use_tensorboard=not args.no_tensorboard,
    )
    run_name = args.run_name or args.mode

    if args.mode == "single":
        print("\n" + "=" * 60)
        print("Single Unit Training")
        print("=" * 60)
        train_single(unit_config, train_config, run_name)
    else:
        print("\n" + "=" * 60)
        print("Coupled Unit Training")
        print("=" * 60)
        coupling_config = CouplingConfig(
            unit=unit_config,
            seeds=(args.seed, args.seed1),
            threshold=args.threshold,
            parallel=args.parallel,
        )
        train_coupled(coupling_config, train_config, run_name)

    print("\nTraining complete!")


if __name__ == "__main__":
    main()
