import numpy as np
import cv2


class CoordinateTransformer:
    '''
    Class to handle coordinate transformations between keyboard and camera coordinate systems.
    '''
    def __init__(self, camera_matrix, dist_coeffs):
        '''
        initialize the transformer with camera parameters
        :param camera_matrix: 3x3 intrinsic camera matrix
        :param dist_coeffs: distortion coefficients
        '''
        self.camera_matrix = camera_matrix
        self.dist_coeffs = dist_coeffs if dist_coeffs is not None else np.zeros((5, 1))

    def get_transformation_matrix(self, rvec, tvec):
        '''
        Convert rotation and translation vectors to a 4x4 transformation matrix.
        :param rvec: rotation vector (3x1)
        :param tvec: translation vector (3x1)
        :return: homogeneous transformation matrix (4x4)
        '''

        #convert rotation vector to rotation matrix
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64))

        #build homogeneous transformation matrix
        T= np.eye(4)
        T[0:3, 0:3] = R # set rotation part (3x3), top left
        T[0:3, 3] = np.asarray(tvec).flatten()# set translation part (3x1), top right

        return T

    def transform_points(self, points_3d, transformation_matrix):
        '''
        Transform 3D points using the given transformation matrix.
        :param points_3d: Nx3 array of 3D points
        :param transformation_matrix: 4x4 homogeneous transformation matrix
        :return: Nx3 array of transformed 3D points
        '''
        points_3d = np.asarray(points_3d, dtype=np.float64).reshape(-1, 3)

        # Convert points to homogeneous coordinates
        points_homogeneous = np.hstack([points_3d, np.ones((len(points_3d), 1))])

        # Apply transformation
        transformed_points_homogeneous = (transformation_matrix @ points_homogeneous.T).T

        # Convert back to Cartesian coordinates
        transformed_points = transformed_points_homogeneous[:, 0:3] / transformed_points_homogeneous[:, 3:]

        return transformed_points

    def camera_to_keyboard_coordinates(self, points_camera, keyboard_pose):
        '''
        Transform points from camera coordinate system to keyboard coordinate system.
        :param points_camera: Nx3 array of 3D points in camera coordinates
        :param keyboard_pose: KeyboardPose of the keyboard
        :return: Nx3 array of 3D points in keyboard coordinates
        '''
        T_keyboard_to_camera = self.get_transformation_matrix(keyboard_pose.rvec, keyboard_pose.tvec)

        # Invert to get transformation from camera to keyboard
        T_camera_to_keyboard = np.linalg.inv(T_keyboard_to_camera)

        return self.transform_points(points_camera, T_camera_to_keyboard)

    def keyboard_to_camera_coordinates(self, points_keyboard, keyboard_pose):
        T_keyboard_to_camera = self.get_transformation_matrix(keyboard_pose.rvec, keyboard_pose.tvec)
        return self.transform_points(points_keyboard, T_keyboard_to_camera)

    def project_points(self, points_keyboard, keyboard_pose):
        '''
        Project keyboard-frame points into the image.
        :return: Nx2 array of pixel coordinates
        '''
        points = np.asarray(points_keyboard, dtype=np.float64).reshape(-1, 3)
        image_points, _ = cv2.projectPoints(
            points,
            keyboard_pose.rvec,
            keyboard_pose.tvec,
            self.camera_matrix,
            self.dist_coeffs
        )
        return image_points.reshape(-1, 2)

    def get_keyboard_axes(self, keyboard_pose, axis_length: float = 0.05):
        '''
        Image points of the keyboard origin and the tips of its x, y and z axes.
        :return: 4x2 array (origin, +X, +Y, +Z)
        '''
        axes_3d = np.array([
            [0, 0, 0],  # origin
            [axis_length, 0, 0],  # +X
            [0, axis_length, 0],  # +Y
            [0, 0, axis_length],  # +Z
        ], dtype=np.float64)

        return self.project_points(axes_3d, keyboard_pose)

    def is_in_front_of_camera(self, points_keyboard, keyboard_pose):
        "True for every point with positive depth in the camera frame"
        points_camera = self.keyboard_to_camera_coordinates(points_keyboard, keyboard_pose)
        return points_camera[:, 2] > 0
