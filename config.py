"""
Precision location demo configuration.
"""

# Tracker configuration (PrecisionTrackerConfig.from_dict)
TRACKER_CONFIG = {
    "scorer": {
        "accuracy_breakpoints": [[5.0, 1.0], [10.0, 0.9], [20.0, 0.7], [50.0, 0.5]],
        "accuracy_floor": 0.3,
        "age_breakpoints": [[1.0, 1.0], [3.0, 0.9], [5.0, 0.7]],
        "age_floor": 0.5,
        "speed_breakpoints_kmh": [[150.0, 1.0], [200.0, 0.7]],
        "speed_floor": 0.3,
    },
    "buffer": {
        "window_s": 5.0,                  # Samples older than this are evicted
        "max_samples_per_source": 256,
    },
    "fusion": {
        "good_fix_accuracy_m": 5.0,       # Satellite fixes this good bypass fusion
        "satellite_weight": 0.7,
        "network_weight": 0.2,
    },
    "filter": {
        "q_pos": 0.1,
        "q_vel": 1.0,
        "r_base": 5.0,
        "initial_variance": 1000.0,
        "confidence_boost": 1.2,
    },
    "outage": {
        "gap_timeout_s": 10.0,            # Satellite silence before dead reckoning
        "max_gap_s": 30.0,                # Longer gaps invalidate the filter prior
    },
    "dead_reckoning": {
        "confidence_decay": 0.9,
        "max_dt_s": 10.0,
        "max_extrapolation_s": 30.0,
        "stale_confidence": 0.01,
    },
    "loop": {
        "rate_hz": 10.0,
        "window_s": 5.0,
        "min_usable_confidence": 0.3,
    },
    "stream_max_size": 256,
}

# Scripted drive (open sky -> tunnel -> exit)
SIMULATION_CONFIG = {
    "start_lat": 12.9716,
    "start_lon": 77.5946,
    "speed_mps": 12.0,                    # Constant northbound speed
    "satellite_interval_s": 1.0,
    "network_interval_s": 3.0,
    "satellite_accuracy_m": 4.0,
    "network_accuracy_m": 35.0,
    "fused_accuracy_m": 8.0,
    "position_noise_m": 1.5,
    "tunnel_acceleration_mps2": 0.3,      # Northward linear acceleration seen in the tunnel
    "seed": 7,
}

# Output configuration
OUTPUT_CONFIG = {
    "enable_console_print": True,
    "print_interval": 10,                 # Print every 10th tick
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
