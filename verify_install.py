#!/usr/bin/env python3
"""Quick verification script to test package installation."""

import sys


def main():
    """Verify the transport_solver package is properly installed."""
    print("=" * 60)
    print("Transportation Solver - Installation Verification")
    print("=" * 60)

    # Test 1: Import package
    print("\n[1/4] Testing package import...")
    try:
        import transport_solver

        print("    ✓ Package imported successfully")
        print(f"    ✓ Version: {transport_solver.__version__}")
    except ImportError as e:
        print(f"    ✗ Failed to import package: {e}")
        return 1

    # Test 2: Check API exports
    print("\n[2/4] Testing API exports...")
    try:
        from transport_solver import (  # noqa: F401
            save_result,
            solve_transportation,
            solve_transshipment,
        )

        print(f"    ✓ {len(transport_solver.__all__)} public names available")
    except ImportError as e:
        print(f"    ✗ Failed to import APIs: {e}")
        return 1

    # Test 3: Check dependencies
    print("\n[3/4] Testing dependencies...")
    try:
        import numpy as np

        print(f"    ✓ NumPy {np.__version__}")
    except ImportError as e:
        print(f"    ✗ Missing dependency: {e}")
        return 1

    # Test 4: Run a simple solve
    print("\n[4/4] Testing solver with simple problem...")
    try:
        from transport_solver import build_problem

        problem = build_problem([20, 30], [25, 25], [[4, 6], [5, 3]])
        result = solve_transportation(problem, method="vam", optimize=True)

        if result.solution.total_cost == 180.0:
            print("    ✓ Solver works correctly")
            print(f"    ✓ Objective: {result.solution.total_cost}")
        else:
            print(f"    ✗ Unexpected objective: {result.solution.total_cost}")
            return 1
    except Exception as e:
        print(f"    ✗ Solver test failed: {e}")
        import traceback

        traceback.print_exc()
        return 1

    # Success
    print("\n" + "=" * 60)
    print("✓ All checks passed! Package is ready to use.")
    print("=" * 60)
    print("\nTry running an example:")
    print("    python examples/solve_example.py")
    print("\nOr run the test suite:")
    print("    pytest")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
