from crop_editor.app import main

main()
