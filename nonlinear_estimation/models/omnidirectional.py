"""
Omnidirectional robot model for state estimation.

Provides continuous-time dynamics f(x, u) -> dx/dt and measurement
h(x, u) -> y for an omnidirectional (omniwheel) mobile robot, in the form
expected by UnscentedKalmanFilter.

State: x = [x, y, phi, vx, vy, omega]
- (x, y): position in world frame
- phi: heading angle
- (vx, vy): world frame velocities
- omega: angular velocity

Control: u = [ax_b, ay_b]
- (ax_b, ay_b): body frame accelerations (from IMU)

Measurement: y = [vx_b, vy_b, omega, phi]
- (vx_b, vy_b): body velocities from encoders
- omega: angular velocity from encoders
- phi: heading from magnetometer/IMU
"""

import numpy as np


class OmnidirectionalRobot:
    """
    Omnidirectional robot model driven by IMU accelerations.

    Parameters
    ----------
    state_std_devs : array_like, optional
        Continuous-time process noise standard deviations (6,)
    measurement_std_devs : array_like, optional
        Continuous-time measurement noise standard deviations (4,)
    """

    STATE_DIM = 6
    INPUT_DIM = 2
    MEASUREMENT_DIM = 4

    # Components that are angles and must wrap at +/-pi
    STATE_ANGLE_INDICES = [2]
    MEASUREMENT_ANGLE_INDICES = [3]

    def __init__(self, state_std_devs=None, measurement_std_devs=None):
        if state_std_devs is None:
            state_std_devs = [0.01, 0.01, 0.01, 0.2, 0.2, 0.1]
        if measurement_std_devs is None:
            measurement_std_devs = [0.02, 0.02, 0.05, 0.01]

        self.state_std_devs = np.asarray(state_std_devs, dtype=float)
        self.measurement_std_devs = np.asarray(measurement_std_devs, dtype=float)

    def dynamics(self, x, u):
        """
        Continuous-time dynamics: dx/dt = f(x, u)

        Parameters
        ----------
        x : np.ndarray
            State vector [x, y, phi, vx, vy, omega] (world frame)
        u : np.ndarray
            Input [ax_b, ay_b] (body frame accelerations)

        Returns
        -------
        np.ndarray
            State derivative (6,)
        """
        _, _, phi, vx_w, vy_w, omega = x
        ax_b, ay_b = u

        c = np.cos(phi)
        s = np.sin(phi)

        # Body -> world acceleration
        ax_w = c * ax_b - s * ay_b
        ay_w = s * ax_b + c * ay_b

        # Angular velocity is a random walk
        return np.array([
            vx_w,
            vy_w,
            omega,
            ax_w,
            ay_w,
            0.0
        ])

    def measurement(self, x, u):
        """
        Measurement model: y = h(x, u)

        Measurements:
            y = [vx_b, vy_b, omega, phi]

        State:
            x = [x, y, phi, vx, vy, omega]
        """
        _, _, phi, vx, vy, omega = x

        c = np.cos(phi)
        s = np.sin(phi)

        # World -> body velocity
        vx_b = c * vx + s * vy
        vy_b = -s * vx + c * vy

        return np.array([
            vx_b,
            vy_b,
            omega,
            phi
        ])
