import argparse
import logging
from pathlib import Path

import cv2
import wgpu
from wgpu.utils import get_default_device

from .camera import CalibrationError, CameraCalibrator, CameraManager, VideoSource
from .detection import AprilTagDetector, load_fiducial_layout
from .pipeline import FramePipeline
from .render import BackgroundPass, frame_to_rgba, render_offscreen

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[1]
WINDOW_TITLE = "Piano AR"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Overlay the tracked piano keyboard on the live camera feed.")
    parser.add_argument("--config-dir", type=Path, default=PROJECT_ROOT / "configs",
                        help="directory holding camera.yaml and fiducials.yaml")
    parser.add_argument("--camera", default=None, help="camera name from camera.yaml")
    parser.add_argument("--display", choices=["wgpu", "opencv"], default="wgpu",
                        help="draw the composited frames with wgpu or cv2.imshow")
    parser.add_argument("--debug-points", action="store_true",
                        help="highlight detected and re-projected marker corners")
    parser.add_argument("--snapshot", type=Path, default=None,
                        help="render one frame offscreen, write it to this image file and exit")
    parser.add_argument("--calibrate", action="store_true",
                        help="run the chessboard calibration before starting")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def run_calibration(camera_manager, camera_name, camera_cfg):
    '''
    Interactive chessboard calibration of the given camera.
    :return: True if a new calibration was saved
    '''
    # initiate calibration
    calibrator = CameraCalibrator(pattern_size = (8,6), square_size = 0.025)

    print("\n ------Calibration Mode------")
    save_dir = PROJECT_ROOT / f"calibration_images_{camera_name}"

    with VideoSource.from_config(camera_cfg) as source:
        image_paths = calibrator.save_calibration_images(source, num_images=15, save_dir=save_dir)
        image_size = source.frame_size

    if len(image_paths) < 5:
        print("calibration not successful, not enough calibration images")
        return False

    points_found = calibrator.find_chessboard_corners(image_paths, showcorners=True)
    if points_found < 5:
        print("calibration not successful, not enough chessboard-points detected")
        return False

    mtx, dist, mean_error = calibrator.calibrate(image_size)

    if mean_error >= 0.5:
        print(f"calibration not successful, mean error to high: {mean_error:.4f}")
        return False

    intrinsics = calibrator.to_intrinsics(camera_name, image_size, mtx, dist, mean_error)
    camera_manager.update_calibration(camera_name, intrinsics)
    print("calibration complete!")
    print(f"arithmetical mean of the errors: {mean_error:.4f}")
    print(f"camera matrix: \n {mtx}")
    print(f"distortion coefficients: {dist}")
    return True


def run_opencv(pipeline):
    print("Starting piano AR... Press ESC to quit.")
    while True:
        frame = pipeline.step()
        if frame is None:
            break

        cv2.imshow(WINDOW_TITLE, frame)

        # stop program
        if cv2.waitKey(1) & 0xFF == 27:  # ESC
            break

    cv2.destroyAllWindows()


def run_wgpu(pipeline, size, fps):
    # selects a gui backend on import
    from rendercanvas.auto import RenderCanvas, loop

    canvas = RenderCanvas(size=size, title=WINDOW_TITLE, update_mode="continuous", max_fps=fps)
    context = canvas.get_wgpu_context()

    adapter = wgpu.gpu.request_adapter_sync(power_preference="high-performance")
    device = adapter.request_device_sync()
    render_texture_format = context.get_preferred_format(device.adapter)
    context.configure(device=device, format=render_texture_format)

    background = BackgroundPass(device, render_texture_format)

    def draw_frame():
        frame = pipeline.step()
        if frame is None:
            canvas.close()
            return
        background.upload(frame_to_rgba(frame))
        background.draw(context.get_current_texture().create_view())

    print("Starting piano AR... Close the window to quit.")
    canvas.request_draw(draw_frame)
    loop.run()


def write_snapshot(pipeline, path):
    frame = pipeline.step()
    if frame is None:
        raise RuntimeError("No frame captured from camera")

    device = get_default_device()
    background = BackgroundPass(
        device,
        wgpu.TextureFormat.rgba8unorm,
        texture_format=wgpu.TextureFormat.rgba8unorm,
    )
    background.upload(frame_to_rgba(frame))
    rgba = render_offscreen(background, (frame.shape[1], frame.shape[0]))

    if not cv2.imwrite(str(path), cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)):
        raise RuntimeError(f"Could not write snapshot to {path}")
    logger.info(f"Wrote snapshot to {path}")


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    camera_manager = CameraManager(args.config_dir / "camera.yaml", project_root=PROJECT_ROOT)
    if args.camera is not None and not camera_manager.switch_camera(args.camera):
        raise KeyError(f"Camera {args.camera} not found in {args.config_dir / 'camera.yaml'}")

    camera_name = camera_manager.current_camera
    camera_cfg = camera_manager.get_current_camera_cfg()

    print(f"Current camera: {camera_name}")
    print(f"Calibrated: {camera_manager.is_calibrated()}")

    ###### camera calibration #######

    if args.calibrate:
        run_calibration(camera_manager, camera_name, camera_cfg)
    elif not camera_manager.is_calibrated():
        print("\n camera needs calibration!")
        response = input("Calibrate now? (y/n): ").lower()
        if response == "y":
            run_calibration(camera_manager, camera_name, camera_cfg)

    ###### End of calibration #######

    try:
        intrinsics = camera_manager.get_intrinsics()
    except CalibrationError as e:
        logger.error(f"{e}. Run with --calibrate to calibrate camera {camera_name}.")
        raise SystemExit(1) from e

    layout = load_fiducial_layout(args.config_dir / "fiducials.yaml")
    detector = AprilTagDetector.from_layout(layout)

    with VideoSource.from_config(camera_cfg) as source:
        intrinsics = intrinsics.scaled_to(source.frame_size)
        pipeline = FramePipeline(source, detector, intrinsics, layout, debug_points=args.debug_points)

        if args.snapshot is not None:
            write_snapshot(pipeline, args.snapshot)
        elif args.display == "opencv":
            run_opencv(pipeline)
        else:
            run_wgpu(pipeline, source.frame_size, camera_cfg.get("fps", 30))


if __name__ == "__main__":
    main()
