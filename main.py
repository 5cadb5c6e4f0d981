# main.py
"""
Main entry point for the particle field demo.

This script orchestrates the whole lifecycle:
1. Loads configuration from `config.json`.
2. Initializes the logging system.
3. Opens the Pygame window and builds the selected shape profile.
4. Runs the frame loop, feeding pointer samples into the scheduler.
5. Handles clean shutdown and prints a performance profile.
"""
import logging
from utils import setup_logging, load_config, run_settings
import numpy as np
import cProfile
import pstats
import io

from constants import BACKGROUND_COLOR, WINDOW_SIZE, FULLSCREEN, CAMERA_FOV_DEG
from errors import ConfigurationError


def main():
    """
    The main function to run the demo.
    """
    # Logging is not set up yet, so we use a print for this one error.
    try:
        config = load_config('config.json')
    except Exception as e:
        print(f"FATAL: Could not load config.json. Error: {e}")
        return

    setup_logging(config)

    logging.info("--- Particle Field Starting ---")

    vis_params = config.get('visualization', {})

    from profiles import init, parse_color, select_profile
    from visualization import Visualizer

    try:
        run_params = run_settings(config)
        profile_name = run_params['profile']
        profile = select_profile(config, profile_name)
        color = parse_color(profile.get('color'), f"profiles.{profile_name}.color")
    except ConfigurationError as e:
        logging.critical(f"Invalid configuration: {e}")
        return
    logging.info(f"Selected profile '{profile_name}'.")

    # --- Component Initialization ---
    # 1. The visualizer owns the surface and decides its final size.
    visualizer = Visualizer(
        width=vis_params.get('width', WINDOW_SIZE[0]),
        height=vis_params.get('height', WINDOW_SIZE[1]),
        color=color,
        fullscreen=vis_params.get('fullscreen', FULLSCREEN),
        background=vis_params.get('background', BACKGROUND_COLOR),
        fov=vis_params.get('fov', CAMERA_FOV_DEG),
        caption=f"Particle Field - {profile_name}",
    )

    log_throttle = run_params['log_throttle_steps']
    fps = run_params['fps']
    fixed_step = run_params['fixed_step']

    # 2. Build the field against that surface.
    try:
        scheduler = init(
            visualizer, profile, seed=run_params['seed'], name=profile_name,
            log_throttle=log_throttle
        )
    except ConfigurationError:
        visualizer.close()
        return

    # --- Profiler Setup ---
    profiler = cProfile.Profile()

    max_steps = run_params['max_steps']

    running = True
    step_num = 0

    profiler.enable()
    while running:
        running, pointer = visualizer.poll_events()
        if not running:
            break

        dt = visualizer.wait_frame(fps)
        frame = scheduler.tick(None if fixed_step else dt, pointer)
        step_num += 1

        # Hot loops must throttle logs
        if step_num % log_throttle == 0:
            logging.info(f"Frame {step_num}/{max_steps} | elapsed {frame.elapsed:.1f}s | fps {visualizer.clock.get_fps():.1f}")
            logging.debug(f"Frame {step_num} | Mean opacity: {np.mean(frame.opacity):.4f}")

        if max_steps and step_num >= max_steps:
            logging.info(f"Reached max_steps ({max_steps}). Stopping.")
            running = False
    profiler.disable()

    visualizer.close()
    logging.info("Frame loop finished.")

    # --- Performance Profile Output ---
    logging.info("--- Performance Profile ---")
    s = io.StringIO()
    # Sort by cumulative time spent in the function
    stats = pstats.Stats(profiler, stream=s).sort_stats('cumtime')
    stats.print_stats(20)
    logging.info(f"\n{s.getvalue()}")

    logging.info("--- Particle Field Shutting Down ---")


if __name__ == "__main__":
    main()
